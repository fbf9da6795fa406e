"""Tests for speechsampler CLI commands."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from speechsampler import __version__
from speechsampler.cli import app
from speechsampler.extract.backends import ExtractionCascade, FFmpegAvailability

runner = CliRunner()


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestPlanCommand:
    def test_plan_long_media(self) -> None:
        result = runner.invoke(app, ["plan", "3600"])
        assert result.exit_code == 0
        assert "5 clip(s)" in result.output
        assert "225.0s total" in result.output

    def test_plan_fast_preset(self) -> None:
        result = runner.invoke(app, ["plan", "3600", "--fast"])
        assert result.exit_code == 0
        assert "3 clip(s)" in result.output

    def test_plan_nothing_to_sample(self) -> None:
        result = runner.invoke(app, ["plan", "0"])
        assert result.exit_code == 0
        assert "No clips planned" in result.output


class TestCheckCommand:
    def test_all_backends_available(self) -> None:
        availability = FFmpegAvailability(ffmpeg_path="/usr/bin/ffmpeg", ffprobe_path="/usr/bin/ffprobe")
        with (
            patch("speechsampler.extract.backends.FFmpegBackend.check_availability", return_value=availability),
            patch("speechsampler.extract.backends.BuiltinBackend.is_available", return_value=True),
        ):
            result = runner.invoke(app, ["check"])

        assert result.exit_code == 0
        assert "/usr/bin/ffmpeg" in result.output

    def test_only_builtin_available(self) -> None:
        availability = FFmpegAvailability(ffmpeg_path=None, ffprobe_path=None)
        with (
            patch("speechsampler.extract.backends.FFmpegBackend.check_availability", return_value=availability),
            patch("speechsampler.extract.backends.BuiltinBackend.is_available", return_value=True),
        ):
            result = runner.invoke(app, ["check"])

        assert result.exit_code == 0
        assert "missing" in result.output

    def test_no_backend_available(self) -> None:
        availability = FFmpegAvailability(ffmpeg_path=None, ffprobe_path=None)
        with (
            patch("speechsampler.extract.backends.FFmpegBackend.check_availability", return_value=availability),
            patch("speechsampler.extract.backends.FFmpegBackend.is_available", return_value=False),
            patch("speechsampler.extract.backends.BuiltinBackend.is_available", return_value=False),
        ):
            result = runner.invoke(app, ["check"])

        assert result.exit_code == 1
        assert "No extraction backend" in result.output
        assert "Install ffmpeg" in result.output


class TestSampleCommand:
    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["sample", str(tmp_path / "missing.mp4")])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_bad_config_file(self, tmp_path: Path, speech_wav: Path) -> None:
        result = runner.invoke(app, ["sample", str(speech_wav), "-c", str(tmp_path / "missing.yaml")])
        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_sample_keeps_outputs(self, tmp_path: Path, speech_wav: Path, make_backend) -> None:
        out_dir = tmp_path / "samples"
        cascade = ExtractionCascade([make_backend()])

        with patch("speechsampler.sampler.build_cascade", return_value=cascade):
            result = runner.invoke(app, ["sample", str(speech_wav), "--out", str(out_dir)])

        assert result.exit_code == 0
        assert (out_dir / "interview_speech.wav").exists()
        assert "Sampled 1 file(s), skipped 0" in result.output

    def test_all_files_skipped(self, tmp_path: Path, silent_wav: Path, make_backend) -> None:
        cascade = ExtractionCascade([make_backend()])

        with patch("speechsampler.sampler.build_cascade", return_value=cascade):
            result = runner.invoke(app, ["sample", str(silent_wav)])

        assert result.exit_code == 1
        assert "skipped 1" in result.output
