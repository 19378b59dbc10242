import pytest

from app.errors import MetadataLookupError
from app.media.ytdlp import check_ytdlp, detect_platform, extract_formats, get_video_info


@pytest.mark.parametrize(
    "url,platform",
    [
        ("https://www.youtube.com/watch?v=abc", "YouTube"),
        ("https://youtu.be/abc", "YouTube"),
        ("https://www.tiktok.com/@user/video/1", "TikTok"),
        ("https://vimeo.com/1", "Unknown"),
    ],
)
def test_detect_platform(url, platform):
    assert detect_platform(url) == platform


def test_extract_formats_dedupes_sorts_and_prepends_best():
    raw = [
        {"format_id": "18", "height": 360, "ext": "mp4", "acodec": "mp4a", "vcodec": "avc1"},
        {"format_id": "137", "height": 1080, "ext": "mp4", "acodec": "none", "vcodec": "avc1",
         "filesize_approx": 1234.7},
        {"format_id": "22", "height": 720, "ext": "mp4", "acodec": "mp4a", "vcodec": "avc1"},
        {"format_id": "136", "height": 720, "ext": "mp4"},
        {"format_id": "247", "height": 720, "ext": "webm"},
        {"format_id": "140", "ext": "m4a"},
    ]

    options = extract_formats(raw)

    assert [o.format_id for o in options] == ["best", "137", "22", "247", "18"]
    assert options[0].quality_label == "Best Quality"
    assert options[1].quality_label == "1080p"
    assert options[1].has_audio is False
    assert options[1].approx_size_bytes == 1234
    assert options[2].has_audio and options[2].has_video


def test_extract_formats_caps_option_count():
    raw = [{"format_id": str(h), "height": h, "ext": "mp4"} for h in range(100, 2000, 100)]
    options = extract_formats(raw)
    assert len(options) == 10
    assert options[1].quality_label == "1900p"


@pytest.mark.asyncio
async def test_get_video_info(worker_command):
    info = await get_video_info("fake://ok/My Title", command=worker_command)

    assert info.title == "My Title"
    assert info.uploader == "Some Channel"
    assert info.platform == "Unknown"
    assert info.original_url == "fake://ok/My Title"
    assert [f.format_id for f in info.formats] == ["best", "22", "18"]
    assert info.to_response()["originalUrl"] == "fake://ok/My Title"


@pytest.mark.asyncio
async def test_get_video_info_failures(worker_command):
    with pytest.raises(MetadataLookupError, match="Unsupported URL"):
        await get_video_info("fake://fail", command=worker_command)
    with pytest.raises(MetadataLookupError, match="Failed to parse video info"):
        await get_video_info("fake://garbage", command=worker_command)
    with pytest.raises(MetadataLookupError, match="yt-dlp not found"):
        await get_video_info("https://youtu.be/x", command=["/nonexistent/yt-dlp"])


@pytest.mark.asyncio
async def test_check_ytdlp(worker_command):
    assert await check_ytdlp(worker_command)
    assert not await check_ytdlp(["/nonexistent/yt-dlp"])
