"""Stand-in for the yt-dlp executable used by the test suite.

The URL picks the behaviour:

  fake://ok/<title>?progress=10,50,100   print progress, write the file, exit 0
  fake://merge/<title>                   download, then report a merge step
  fake://nofile                          exit 0 without writing anything
  fake://fail                            print to stderr, exit 1
  fake://silentfail                      exit 2 with no stderr
  fake://hang                            print one progress line, then sleep
"""

import json
import sys
import time
from urllib.parse import parse_qs, urlparse


def emit(line):
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def main(argv):
    if "--version" in argv:
        emit("2099.01.01")
        return 0

    url = argv[-1]
    parsed = urlparse(url)
    kind = parsed.netloc
    title = parsed.path.strip("/") or "video"
    query = parse_qs(parsed.query)

    if "--dump-json" in argv:
        if kind == "fail":
            sys.stderr.write("ERROR: Unsupported URL: " + url + "\n")
            return 1
        if kind == "garbage":
            emit("not json")
            return 0
        emit(json.dumps({
            "id": "abc123",
            "title": title,
            "thumbnail": "https://img.example/abc123.jpg",
            "duration": 42,
            "channel": "Some Channel",
            "formats": [
                {"format_id": "18", "height": 360, "ext": "mp4", "acodec": "mp4a", "vcodec": "avc1"},
                {"format_id": "22", "height": 720, "ext": "mp4", "acodec": "mp4a", "vcodec": "avc1",
                 "filesize": 1000},
                {"format_id": "136", "height": 720, "ext": "mp4", "acodec": "none", "vcodec": "avc1"},
                {"format_id": "140", "ext": "m4a", "acodec": "mp4a", "vcodec": "none"},
            ],
        }))
        return 0

    template = argv[argv.index("-o") + 1]
    fmt = argv[argv.index("-f") + 1]
    ext = "mp4" if fmt != "bestaudio" else "m4a"
    path = template.replace("%(title)s", title).replace("%(ext)s", ext)

    if kind == "fail":
        sys.stderr.write("ERROR: [generic] Unable to download webpage\n")
        return 1
    if kind == "silentfail":
        return 2
    if kind == "hang":
        emit("[download]   1.0% of 10.00MiB at 1.00MiB/s ETA 00:09")
        time.sleep(60)
        return 0

    emit("[youtube] abc123: Downloading webpage")
    emit("[download] Destination: " + path)
    for value in query.get("progress", ["25.0,50.0,100"])[0].split(","):
        emit("[download]  %s%% of 10.00MiB at 1.00MiB/s ETA 00:01" % value)

    if kind == "nofile":
        return 0

    with open(path, "wb") as f:
        f.write(b"fake video bytes " + title.encode())

    if kind == "merge":
        emit('[Merger] Merging formats into "%s"' % path)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
