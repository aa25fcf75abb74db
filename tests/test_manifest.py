from __future__ import annotations

import io

import pytest

from ghash import __version__
from ghash.errors import FatalError, ManifestCorruptError, ManifestLineError, UnknownAlgorithmError
from ghash.manifest import (
    ManifestEntry,
    ManifestWriter,
    format_entry,
    iter_entries,
    needs_quoting,
    open_manifest,
    parse_entry,
    quote_path,
    read_header,
    read_manifest,
    unquote_path,
)

DIGEST = "ab" * 32


@pytest.mark.parametrize(
    "name",
    [
        "plain.txt",
        "dir/with space.txt",
        "pipe|in|name",
        'quote"inside',
        '"leading quote',
        "new\nline",
        "tab\there",
        " leading space",
        "trailing space ",
        "back\\slash\n",
        "bell\x07and\x1bescape",
        "bad byte \udcff here\n",
        "bad byte \udcff here",
    ],
)
def test_entry_line_round_trips_filename(name):
    line = format_entry(DIGEST, 17, name)
    assert "\n" not in line
    entry = parse_entry(line + "\n", 4, "m.ghash")
    assert entry == ManifestEntry(DIGEST, 17, name, 4)


def test_only_unsafe_names_are_quoted():
    assert not needs_quoting("a/b c.txt")
    assert format_entry(bytes.fromhex("00ff"), 2, "a/b c.txt") == "00ff|2|a/b c.txt"
    assert format_entry("00", 1, "a|b") == '00|1|"a|b"'


def test_quoting_uses_short_and_hex_escapes():
    assert quote_path("a\nb\x01") == '"a\\nb\\x01"'
    assert unquote_path('"a\\x41\\t"') == "aA\t"


@pytest.mark.parametrize("text", ['"open', '"bad\\q"', '"short\\x4"', '"in"side"'])
def test_bad_quoting_is_rejected(text):
    with pytest.raises(ValueError):
        unquote_path(text)


def test_header_round_trip():
    out = io.StringIO()
    writer = ManifestWriter(out, "blake2b")
    writer.write(DIGEST, 3, "x")
    assert writer.count == 1
    first, second = out.getvalue().splitlines()
    header = read_header(first, "m")
    assert (header.algorithm, header.version) == ("blake2b", __version__)
    assert parse_entry(second, 2, "m").path == "x"


@pytest.mark.parametrize(
    "first",
    [None, "", "   \n", "#!ghash sha256\n", "#!other sha256 1.0\n", "deadbeef|1|x\n"],
)
def test_corrupt_headers_are_fatal(first):
    with pytest.raises(ManifestCorruptError):
        read_header(first, "m.ghash")


def test_unknown_header_algorithm_is_fatal():
    with pytest.raises(UnknownAlgorithmError) as info:
        read_header("#!ghash md5 0.1\n", "m.ghash")
    assert isinstance(info.value, FatalError)
    assert "md5" in str(info.value)


@pytest.mark.parametrize(
    "line, reason",
    [
        ("nopipes", "malformed checksum"),
        ("abcd|12", "malformed file size"),
        ("abcd|twelve|x", "malformed line; size"),
        ("abcd|-1|x", "negative size"),
        ("abcd|1|", "empty filename"),
        ('abcd|1|"unterminated', "filename"),
    ],
)
def test_malformed_lines(line, reason):
    with pytest.raises(ManifestLineError) as info:
        parse_entry(line, 7, "m.ghash")
    assert info.value.line == 7
    assert reason in info.value.reason


def test_digest_is_lowercased():
    assert parse_entry("ABCDEF|1|x", 2, "m").digest == "abcdef"


def test_scan_continues_past_bad_lines():
    lines = ["aa|1|one\n", "garbage\n", "\n", "bb|x|two\n", "cc|3|three\n"]
    items = list(iter_entries(lines, "m.ghash"))
    assert [type(i).__name__ for i in items] == ["ManifestEntry", "ManifestLineError", "ManifestLineError", "ManifestEntry"]
    assert [i.line for i in items] == [2, 3, 5, 6]
    failure = items[1].as_failure()
    assert failure.line == 3 and failure.source == "m.ghash"


def test_read_manifest_from_stream():
    stream = io.StringIO(f"#!ghash sha512 {__version__}\n{DIGEST}|5|a\n")
    header, entries = read_manifest(stream, "<test>")
    assert header.algorithm == "sha512"
    assert [e.path for e in entries] == ["a"]


def test_open_manifest_missing_file_is_fatal(tmp_path):
    with pytest.raises(ManifestCorruptError):
        with open_manifest(str(tmp_path / "missing.ghash")):
            pass


def test_open_manifest_passes_streams_through():
    stream = io.StringIO("x")
    with open_manifest(stream) as (handle, name):
        assert handle is stream
        assert name == "<stream>"


def test_undecodable_bytes_force_quoting():
    assert needs_quoting("bad\udcffname")
    assert format_entry("00", 1, "bad\udcffname") == '00|1|"bad\\xffname"'
