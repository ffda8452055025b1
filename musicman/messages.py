"""Centralized reply catalogue.

Primary language: EN. Optional VI toggle via config.language ('en'|'vi').
Templates use str.format fields; unused keyword arguments are ignored so
callers can always pass ``prefix`` and ``detail``.
"""

_EN = {
	"PONG": "Ping took {ms} ms",
	"PING_UNAVAILABLE": "There was a problem getting the gateway latency",
	"JOINED": "Joined <#{channel}>",
	"ALREADY_CONNECTED": "I'm already in a voice channel, use {prefix}leave first",
	"NO_VOICE_CHANNEL": "You need to be in a voice channel to use {prefix}join",
	"NOT_CONNECTED": "I'm not in a voice channel, use {prefix}join first",
	"LEFT": "Left the voice channel",
	"LEFT_WITH_ERRORS": "Left the voice channel (cleanup error: {detail})",
	"ADDED": "Added to queue: {title}",
	"NOT_FOUND": "No results found for: {detail}",
	"SKIPPED": "Skipped: {title}",
	"NOTHING_TO_SKIP": "Nothing to skip",
	"NOW_PLAYING": "Now playing: {title} [{duration}]",
	"NOTHING_PLAYING": "Nothing is playing",
	"QUEUE_FULL": "Queue is full",
	"EXTERNAL_ERROR": "Voice or audio service failed during {detail}, please try again",
	"ARGUMENT_ERROR": "Usage: {prefix}{detail}",
	"GENERIC_ERROR": "Something went wrong while running that command",
	"CONFIG_ERROR": "Configuration error: {detail}",
	"HELP_HEADER": "Available commands:",
}

_VI = {
	"PONG": "Ping mất {ms} ms",
	"PING_UNAVAILABLE": "Không lấy được độ trễ gateway",
	"JOINED": "Đã vào <#{channel}>",
	"ALREADY_CONNECTED": "Mình đang ở trong kênh thoại rồi, dùng {prefix}leave trước nhé",
	"NO_VOICE_CHANNEL": "Bạn cần vào kênh thoại trước khi dùng {prefix}join",
	"NOT_CONNECTED": "Mình chưa vào kênh thoại, dùng {prefix}join trước nhé",
	"LEFT": "Đã rời kênh thoại",
	"LEFT_WITH_ERRORS": "Đã rời kênh thoại (lỗi khi dọn dẹp: {detail})",
	"ADDED": "Đã thêm vào hàng đợi: {title}",
	"NOT_FOUND": "Không tìm thấy kết quả cho: {detail}",
	"SKIPPED": "Đã bỏ qua: {title}",
	"NOTHING_TO_SKIP": "Không có gì để bỏ qua",
	"NOW_PLAYING": "Đang phát: {title} [{duration}]",
	"NOTHING_PLAYING": "Không có bài nào đang phát",
	"QUEUE_FULL": "Hàng đợi đã đầy",
	"EXTERNAL_ERROR": "Dịch vụ thoại hoặc âm thanh bị lỗi khi {detail}, thử lại nhé",
	"ARGUMENT_ERROR": "Cách dùng: {prefix}{detail}",
	"GENERIC_ERROR": "Có lỗi khi chạy lệnh này",
	"CONFIG_ERROR": "Lỗi cấu hình: {detail}",
	"HELP_HEADER": "Các lệnh hiện có:",
}

_ACTIVE = _EN


def set_language(lang: str):
	global _ACTIVE
	if lang and lang.lower().startswith("vi"):
		_ACTIVE = _VI
	else:
		_ACTIVE = _EN


def msg(key: str, **fields) -> str:
	template = _ACTIVE.get(key, _EN.get(key, key))
	if not fields:
		return template
	try:
		return template.format(**fields)
	except (KeyError, IndexError, ValueError):
		return template
