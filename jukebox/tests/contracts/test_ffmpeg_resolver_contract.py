"""
Contract tests for FFmpegResolver.

- Priority: explicit override > native > bundled (prefer_native swaps the last two)
- force_native / force_bundled restrict the choice
- Results are cached until clear_cache() or update_options()
"""

import os
from unittest.mock import patch

import pytest

from jukebox.decoding.ffmpeg_resolver import FFmpegResolver, ResolverOptions
from jukebox.errors import ResolutionError

NATIVE = {"ffmpeg": "/usr/bin/ffmpeg", "ffprobe": "/usr/bin/ffprobe"}


def which_from(table):
    return lambda name: table.get(name)


@pytest.fixture
def bundled_dir(tmp_path):
    """Directory holding executable ffmpeg and ffprobe placeholders."""
    for name in ("ffmpeg", "ffprobe"):
        binary = tmp_path / name
        binary.write_text("#!/bin/sh\n")
        os.chmod(binary, 0o755)
    return str(tmp_path)


class TestPriority:
    """Tests for resolution priority."""

    def test_native_preferred_by_default(self, bundled_dir):
        """With both available and default options, native MUST win."""
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", side_effect=which_from(NATIVE)):
            paths = FFmpegResolver(bundled_dir=bundled_dir).resolve()

        assert paths.source == "native"
        assert paths.ffmpeg == "/usr/bin/ffmpeg"
        assert paths.is_native

    def test_bundled_wins_when_native_not_preferred(self, bundled_dir):
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", side_effect=which_from(NATIVE)):
            paths = FFmpegResolver(bundled_dir=bundled_dir, prefer_native=False).resolve()

        assert paths.source == "bundled"
        assert paths.ffmpeg == os.path.join(bundled_dir, "ffmpeg")

    def test_bundled_used_when_native_missing(self, bundled_dir):
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", return_value=None):
            paths = FFmpegResolver(bundled_dir=bundled_dir).resolve()

        assert paths.source == "bundled"

    def test_explicit_override_beats_native(self):
        """Configured paths MUST be used ahead of any discovered install."""
        table = dict(NATIVE, **{"/opt/ff/ffmpeg": "/opt/ff/ffmpeg"})
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", side_effect=which_from(table)):
            paths = FFmpegResolver(ffmpeg_path="/opt/ff/ffmpeg").resolve()

        assert paths.source == "override"
        assert paths.ffmpeg == "/opt/ff/ffmpeg"
        assert paths.ffprobe == "/usr/bin/ffprobe"

    def test_unusable_override_raises(self):
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", side_effect=which_from(NATIVE)):
            with pytest.raises(ResolutionError, match="not usable"):
                FFmpegResolver(ffmpeg_path="/nowhere/ffmpeg").resolve()

    def test_nothing_available_raises(self):
        """No usable install MUST raise ResolutionError."""
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", return_value=None):
            with pytest.raises(ResolutionError, match="FFmpeg not found"):
                FFmpegResolver().resolve()


class TestForceFlags:
    """Tests for force_native and force_bundled."""

    def test_force_native_without_native_raises_with_install_hint(self, bundled_dir):
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", return_value=None):
            with pytest.raises(ResolutionError, match="apt-get install ffmpeg"):
                FFmpegResolver(bundled_dir=bundled_dir, force_native=True).resolve()

    def test_force_bundled_ignores_native(self, bundled_dir):
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", side_effect=which_from(NATIVE)):
            paths = FFmpegResolver(bundled_dir=bundled_dir, force_bundled=True).resolve()

        assert paths.source == "bundled"

    def test_force_bundled_without_bundle_raises(self):
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", side_effect=which_from(NATIVE)):
            with pytest.raises(ResolutionError, match="Bundled FFmpeg binaries not found"):
                FFmpegResolver(force_bundled=True).resolve()

    def test_both_force_flags_rejected(self):
        with pytest.raises(ResolutionError, match="mutually exclusive"):
            FFmpegResolver(force_native=True, force_bundled=True).resolve()


class TestCaching:
    """Tests for the resolution cache."""

    def test_resolution_is_cached(self):
        """resolve() MUST NOT search again until the cache is cleared."""
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", side_effect=which_from(NATIVE)) as which:
            resolver = FFmpegResolver()
            first = resolver.resolve()
            calls = which.call_count
            second = resolver.resolve()

            assert second is first
            assert which.call_count == calls

            resolver.clear_cache()
            resolver.resolve()
            assert which.call_count > calls

    def test_update_options_invalidates_cache(self, bundled_dir):
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", side_effect=which_from(NATIVE)):
            resolver = FFmpegResolver(bundled_dir=bundled_dir)
            assert resolver.resolve().source == "native"

            resolver.update_options(prefer_native=False)

            assert resolver.options.prefer_native is False
            assert resolver.options.bundled_dir == bundled_dir
            assert resolver.resolve().source == "bundled"

    def test_options_object_and_kwargs_merge(self):
        resolver = FFmpegResolver(ResolverOptions(bundled_dir="/opt/ff"), prefer_native=False)

        assert resolver.options == ResolverOptions(bundled_dir="/opt/ff", prefer_native=False)


class TestAvailability:
    """Tests for get_availability()."""

    def test_reports_both(self, bundled_dir):
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", side_effect=which_from(NATIVE)):
            info = FFmpegResolver(bundled_dir=bundled_dir).get_availability()

        assert info["native_available"] is True
        assert info["bundled_available"] is True
        assert "Native is recommended" in info["recommendation"]

    def test_reports_none(self):
        with patch("jukebox.decoding.ffmpeg_resolver.shutil.which", return_value=None):
            info = FFmpegResolver().get_availability()

        assert info == {
            "native_available": False,
            "bundled_available": False,
            "recommendation": "No FFmpeg installation found. Please install FFmpeg on your system.",
        }
