from __future__ import annotations

import argparse
import sys
import uuid
from pathlib import Path
from typing import BinaryIO, Iterator

import requests

DEFAULT_URL = "http://localhost:8080/upload"
DEFAULT_CHUNK_SIZE = 64 * 1024


def _parse_args() -> argparse.Namespace:  # noqa: D401
    parser = argparse.ArgumentParser(
        description="Stream a file to the /upload endpoint and save the relayed body",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("path", type=Path, help="File to upload.")
    parser.add_argument(
        "--url",
        default=DEFAULT_URL,
        help="Full URL to the /upload endpoint.",
    )
    parser.add_argument(
        "--field",
        default="file",
        help="Multipart field name carrying the file.",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Write the relayed body here instead of stdout.",
    )
    parser.add_argument(
        "--chunk-size",
        dest="chunk_size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        help="Bytes read from disk (and from the response) per iteration.",
    )
    return parser.parse_args()


def _multipart_body(
    path: Path, field: str, boundary: str, chunk_size: int
) -> Iterator[bytes]:
    """Yield a ``multipart/form-data`` body for *path* without reading it whole.

    ``requests`` would load the file into memory when given ``files=``; a
    generator passed as ``data=`` is sent with chunked transfer encoding.
    """

    yield (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{field}"; filename="{path.name}"\r\n'
        "Content-Type: text/csv\r\n\r\n"
    ).encode("utf-8")
    with path.open("rb") as handle:
        yield from _read_chunks(handle, chunk_size)
    yield f"\r\n--{boundary}--\r\n".encode("ascii")


def _read_chunks(handle: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    while True:
        chunk = handle.read(chunk_size)
        if not chunk:
            return
        yield chunk


def main() -> None:  # noqa: D401
    args = _parse_args()

    if not args.path.is_file():
        print(f"Error: {args.path} is not a file", file=sys.stderr)
        sys.exit(1)
    if args.chunk_size <= 0:
        print("--chunk-size must be a positive integer", file=sys.stderr)
        sys.exit(1)

    boundary = uuid.uuid4().hex
    size = args.path.stat().st_size
    print(f"Uploading {args.path} ({size} bytes) → {args.url}", file=sys.stderr)

    response = requests.post(
        args.url,
        data=_multipart_body(args.path, args.field, boundary, args.chunk_size),
        headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
        stream=True,
    )

    with response:
        if response.status_code != 200:
            print(f"❌ HTTP {response.status_code}\n{response.text}", file=sys.stderr)
            sys.exit(1)

        received = 0
        sink = args.out.open("wb") if args.out else sys.stdout.buffer
        try:
            for chunk in response.iter_content(chunk_size=args.chunk_size):
                received += len(chunk)
                sink.write(chunk)
        finally:
            if args.out:
                sink.close()

    status = "identical size" if received == size else "SIZE MISMATCH"
    print(f"\nReceived {received} bytes ({status})", file=sys.stderr)
    if received != size:
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    main()
