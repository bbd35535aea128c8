"""Tests for the transcoder adapter."""

import subprocess

import pytest

from aucomp.errors import TranscodeFailure
from aucomp.transcoder import Transcoder, build_command, copy_verbatim, reencode_text


class TestBuildCommand:

    def test_argument_string_between_input_and_output(self):
        cmd = build_command("ffmpeg", "/in/a b.flac", "/out/a b.mp3", "-codec:a libmp3lame -q:a 2")
        assert cmd == [
            "ffmpeg", "-y", "-i", "/in/a b.flac",
            "-codec:a", "libmp3lame", "-q:a", "2",
            "/out/a b.mp3",
        ]

    def test_no_overwrite_flag(self):
        cmd = build_command("ffmpeg", "in", "out", "-b:a 192k", overwrite=False)
        assert cmd == ["ffmpeg", "-i", "in", "-b:a", "192k", "out"]

    def test_quoted_arguments_kept_together(self, monkeypatch):
        monkeypatch.setattr("aucomp.transcoder.IS_WINDOWS", False)
        cmd = build_command("ffmpeg", "in", "out", '-metadata comment="two words"')
        assert cmd[4:6] == ["-metadata", "comment=two words"]


class TestTranscoder:

    def test_run_returns_exit_code(self, monkeypatch):
        captured = {}

        def fake_run(cmd, **kwargs):
            captured["cmd"] = cmd
            captured["kwargs"] = kwargs
            return subprocess.CompletedProcess(cmd, 3)

        monkeypatch.setattr(subprocess, "run", fake_run)
        t = Transcoder("ffmpeg", "-q:a 2")
        assert t.run("in.flac", "out.mp3") == 3
        assert captured["cmd"] == ["ffmpeg", "-y", "-i", "in.flac", "-q:a", "2", "out.mp3"]
        assert captured["kwargs"]["stdin"] is subprocess.DEVNULL
        assert captured["kwargs"]["stdout"] is subprocess.DEVNULL

    def test_show_output_inherits_streams(self, monkeypatch):
        captured = {}

        def fake_run(cmd, **kwargs):
            captured.update(kwargs)
            return subprocess.CompletedProcess(cmd, 0)

        monkeypatch.setattr(subprocess, "run", fake_run)
        Transcoder("ffmpeg", "-q:a 2", show_output=True).run("a", "b")
        assert captured["stdout"] is None and captured["stderr"] is None

    def test_transcode_raises_on_nonzero(self, monkeypatch):
        monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 1))
        with pytest.raises(TranscodeFailure) as info:
            Transcoder("ffmpeg", "-q:a 2").transcode("in.flac", "out.mp3")
        assert info.value.exit_code == 1
        assert info.value.path == "in.flac"

    def test_transcode_ok(self, monkeypatch):
        monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0))
        Transcoder("ffmpeg", "-q:a 2").transcode("in.flac", "out.mp3")

    def test_missing_executable(self, tmp_path):
        t = Transcoder(str(tmp_path / "no-such-ffmpeg"), "-q:a 2")
        with pytest.raises(TranscodeFailure):
            t.transcode(tmp_path / "a.flac", tmp_path / "a.mp3")


class TestTextAndCopy:

    def test_reencode_to_gb18030(self, tmp_path):
        src = tmp_path / "a.lrc"
        dst = tmp_path / "b.lrc"
        text = "[00:01.00]晴天\r\n[00:02.00]故事的小黄花\n"
        src.write_bytes(b"\xef\xbb\xbf" + text.encode("utf-8"))
        reencode_text(src, dst)
        assert dst.read_bytes() == text.encode("gb18030")

    def test_undecodable_text(self, tmp_path):
        src = tmp_path / "a.lrc"
        src.write_bytes(b"\xff\xfe\xfd")
        with pytest.raises(TranscodeFailure):
            reencode_text(src, tmp_path / "b.lrc")
        assert not (tmp_path / "b.lrc").exists()

    def test_unencodable_text(self, tmp_path):
        src = tmp_path / "a.lrc"
        src.write_text("ü", encoding="utf-8")
        with pytest.raises(TranscodeFailure):
            reencode_text(src, tmp_path / "b.lrc", target_encoding="ascii")

    def test_copy_verbatim(self, tmp_path):
        src = tmp_path / "cover.jpg"
        src.write_bytes(bytes(range(256)))
        copy_verbatim(src, tmp_path / "copy.jpg")
        assert (tmp_path / "copy.jpg").read_bytes() == bytes(range(256))
