from __future__ import annotations


APP_NAME: str = "clipdrop"

# User-facing, short, user-safe messages (no stack traces)
MSG_RATE_LIMITED: str = "⚠️ Rate limit exceeded. Please try again later."
MSG_DOWNLOADING: str = "⬇️ Downloading TikTok {url}"
MSG_CAPTION: str = "⬇️ TikTok downloaded: {title}"
MSG_DOWNLOAD_ERROR: str = "❌ Error downloading TikTok."
MSG_SEND_ERROR: str = "❌ Error sending the video."
MSG_PROCESSING_ERROR: str = "❌ Error processing the message."
