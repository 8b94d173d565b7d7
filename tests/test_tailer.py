from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from nodedash.contracts.error import TailError
from nodedash.logfiles.tailer import FileTail, LogTailer


def test_file_tail_reads_complete_lines_and_buffers_partial(tmp_path: Path) -> None:
    logfile = tmp_path / "node.log"
    logfile.write_text("first\nsecond\nthi", encoding="utf-8")
    tail = FileTail(logfile)
    assert tail.read_new_lines() == ["first", "second"]
    assert tail.read_new_lines() == []

    with logfile.open("a", encoding="utf-8") as fh:
        fh.write("rd\nfourth\n")
    assert tail.read_new_lines() == ["third", "fourth"]


def test_file_tail_joins_crlf_split_across_reads(tmp_path: Path) -> None:
    logfile = tmp_path / "node.log"
    logfile.write_bytes(b"first\r\nsecond\r")
    tail = FileTail(logfile)
    assert tail.read_new_lines() == ["first"]

    with logfile.open("ab") as fh:
        fh.write(b"\nthird\r\n")
    assert tail.read_new_lines() == ["second", "third"]
    assert tail.partial == ""


def test_file_tail_from_end_skips_existing_content(tmp_path: Path) -> None:
    logfile = tmp_path / "node.log"
    logfile.write_text("old line\n", encoding="utf-8")
    tail = FileTail(logfile, from_end=True)
    assert tail.read_new_lines() == []
    with logfile.open("a", encoding="utf-8") as fh:
        fh.write("new line\n")
    assert tail.read_new_lines() == ["new line"]


def test_file_tail_restarts_after_truncation(tmp_path: Path) -> None:
    logfile = tmp_path / "node.log"
    logfile.write_text("a long first line\nanother line\n", encoding="utf-8")
    tail = FileTail(logfile)
    assert len(tail.read_new_lines()) == 2
    logfile.write_text("fresh\n", encoding="utf-8")
    assert tail.read_new_lines() == ["fresh"]


def test_file_tail_waits_for_missing_file(tmp_path: Path) -> None:
    logfile = tmp_path / "later.log"
    tail = FileTail(logfile, from_end=True)
    assert tail.read_new_lines() == []
    logfile.write_text("hello\n", encoding="utf-8")
    assert tail.read_new_lines() == ["hello"]


def test_log_tailer_requires_parent_directory(tmp_path: Path) -> None:
    tailer = LogTailer()
    with pytest.raises(FileNotFoundError):
        tailer.add_file(str(tmp_path / "nope" / "node.log"))
    tailer.add_file(str(tmp_path / "node.log"))
    tailer.add_file(str(tmp_path / "node.log"))
    assert list(tailer.tails) == [str(tmp_path / "node.log")]


def test_log_tailer_yields_lines_per_path(tmp_path: Path) -> None:
    one = tmp_path / "one.log"
    two = tmp_path / "two.log"
    one.write_text("a\nb\n", encoding="utf-8")
    two.write_text("c\n", encoding="utf-8")
    tailer = LogTailer(poll_interval=0.01)
    tailer.add_file(str(one))
    tailer.add_file(str(two))

    async def collect() -> list[tuple[str, str]]:
        return [await tailer.next_line() for _ in range(3)]  # type: ignore[misc]

    got = asyncio.run(collect())
    assert got == [(str(one), "a"), (str(one), "b"), (str(two), "c")]


def test_closed_tailer_returns_none(tmp_path: Path) -> None:
    tailer = LogTailer(poll_interval=0.01)
    tailer.add_file(str(tmp_path / "node.log"))
    tailer.close()
    assert tailer.closed
    assert asyncio.run(tailer.next_line()) is None


def test_read_failure_becomes_tail_error(tmp_path: Path) -> None:
    # a directory where a logfile is expected cannot be opened for reading
    bogus = tmp_path / "dir.log"
    bogus.mkdir()
    tailer = LogTailer()
    tailer.add_file(str(bogus))
    tailer.tails[str(bogus)].offset = -1
    with pytest.raises(TailError):
        tailer.poll()
