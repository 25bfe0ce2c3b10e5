"""Tests for updating the managed yt-dlp and ffmpeg binaries."""

import io
import logging
import os
import subprocess
import tarfile
import zipfile
from pathlib import Path
from unittest.mock import Mock, patch

import httpx
import pytest

from ytmux.errors import ArchiveError, ParseError, TransportError
from ytmux.updater.binaries import (
    ArchiveFailurePolicy,
    SelfUpdater,
    UpdateStatus,
    extract_member,
    ffmpeg_binary,
    replace_binary,
    third_token_of_first_line,
    update_binaries,
    yt_dlp_binary,
)
from ytmux.updater.releases import ReleaseAsset, ReleaseChecker, ReleaseInfo

FFMPEG_VERSION_OUTPUT = (
    b"ffmpeg version N-113000-g1234abcd-20240101 Copyright (c) 2000-2024 the FFmpeg developers\n"
    b"built with gcc 13.2.0\n"
)


def completed(returncode: int = 0, stdout: bytes = b"") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=b"")


def make_zip(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def make_tar(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def mock_checker(release: ReleaseInfo | None = None, payload: bytes = b"") -> Mock:
    checker = Mock(spec=ReleaseChecker)
    checker.latest_release.return_value = release
    checker.download_asset.return_value = payload
    return checker


@pytest.fixture
def yt_dlp(tmp_path: Path):
    path = tmp_path / "yt-dlp"
    path.write_bytes(b"old yt-dlp")
    return yt_dlp_binary(path)


@pytest.fixture
def ffmpeg(tmp_path: Path):
    path = tmp_path / "ffmpeg.exe"
    path.write_bytes(b"old ffmpeg")
    return ffmpeg_binary(path, platform_tag="win64")


FFMPEG_RELEASE = ReleaseInfo(
    tag_name="latest",
    assets=[
        ReleaseAsset(name="ffmpeg-master-latest-linux64-gpl.tar.xz", browser_download_url="https://e/l.tar.xz"),
        ReleaseAsset(name="ffmpeg-master-latest-win64-gpl.zip", browser_download_url="https://e/w.zip"),
    ],
)


class TestYtDlpUpdate:
    """Update checks for binaries that update themselves."""

    def test_update_needed_runs_self_update(self, yt_dlp) -> None:
        """An older date-style version triggers ``yt-dlp -U``."""
        updater = SelfUpdater(mock_checker(ReleaseInfo(tag_name="2024.02.10")))

        with patch(
            "ytmux.updater.binaries.subprocess.run",
            side_effect=[completed(stdout=b"2024.01.01\n"), completed()],
        ) as mock_run:
            result = updater.check(yt_dlp)

        assert result.status == UpdateStatus.SUCCESS
        assert result.current_version == "2024.01.01"
        assert result.latest_version == "2024.02.10"
        assert mock_run.call_args_list[0].args[0] == [str(yt_dlp.path), "--version"]
        assert mock_run.call_args_list[1].args[0] == [str(yt_dlp.path), "-U"]

    def test_identical_versions_are_up_to_date(self, yt_dlp) -> None:
        updater = SelfUpdater(mock_checker(ReleaseInfo(tag_name="2024.02.10")))

        with patch(
            "ytmux.updater.binaries.subprocess.run",
            return_value=completed(stdout=b"2024.02.10\n"),
        ) as mock_run:
            result = updater.check(yt_dlp)

        assert result.status == UpdateStatus.UP_TO_DATE
        assert mock_run.call_count == 1

    def test_unparsable_version_falls_back_to_string_mismatch(self, yt_dlp) -> None:
        updater = SelfUpdater(mock_checker(ReleaseInfo(tag_name="2024.02.10")))

        with patch(
            "ytmux.updater.binaries.subprocess.run",
            side_effect=[completed(stdout=b"nightly\n"), completed()],
        ) as mock_run:
            result = updater.check(yt_dlp)

        assert result.status == UpdateStatus.SUCCESS
        assert mock_run.call_count == 2

    def test_failed_self_update_is_reported_not_raised(self, yt_dlp, caplog) -> None:
        updater = SelfUpdater(mock_checker(ReleaseInfo(tag_name="2024.02.10")))

        with caplog.at_level(logging.ERROR), patch(
            "ytmux.updater.binaries.subprocess.run",
            side_effect=[completed(stdout=b"2024.01.01"), completed(returncode=1)],
        ):
            result = updater.check(yt_dlp)

        assert result.status == UpdateStatus.UPDATE_FAILED
        assert "update failed" in caplog.text

    def test_missing_binary_is_soft_failure(self, tmp_path: Path, caplog) -> None:
        checker = mock_checker(ReleaseInfo(tag_name="2024.02.10"))
        updater = SelfUpdater(checker)

        with caplog.at_level(logging.WARNING):
            result = updater.check(yt_dlp_binary(tmp_path / "does-not-exist"))

        assert result.status == UpdateStatus.ERROR
        assert "Failed to execute" in caplog.text
        checker.latest_release.assert_not_called()

    def test_version_command_failure_is_soft(self, yt_dlp) -> None:
        checker = mock_checker(ReleaseInfo(tag_name="2024.02.10"))

        with patch("ytmux.updater.binaries.subprocess.run", return_value=completed(returncode=2)):
            result = SelfUpdater(checker).check(yt_dlp)

        assert result.status == UpdateStatus.ERROR
        checker.latest_release.assert_not_called()

    @pytest.mark.parametrize("error", [TransportError("offline"), ParseError("bad json")])
    def test_release_errors_are_soft(self, yt_dlp, error) -> None:
        checker = mock_checker()
        checker.latest_release.side_effect = error

        with patch("ytmux.updater.binaries.subprocess.run", return_value=completed(stdout=b"2024.01.01")):
            result = SelfUpdater(checker).check(yt_dlp)

        assert result.status == UpdateStatus.ERROR
        assert result.error == str(error)

    def test_redirect_loop_is_soft(self, yt_dlp) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"Location": str(request.url)})

        client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)

        with patch.object(SelfUpdater, "get_current_version", return_value="2024.01.01"):
            result = SelfUpdater(ReleaseChecker(client=client)).check(yt_dlp)

        assert result.status == UpdateStatus.ERROR
        assert "redirects" in result.error

    def test_missing_tag_is_soft(self, yt_dlp) -> None:
        with patch("ytmux.updater.binaries.subprocess.run", return_value=completed(stdout=b"2024.01.01")):
            result = SelfUpdater(mock_checker(None)).check(yt_dlp)

        assert result.status == UpdateStatus.ERROR
        assert result.latest_version is None


class TestFfmpegUpdate:
    """Update checks for binaries replaced from a release archive."""

    def test_replaces_binary_from_zip(self, ffmpeg) -> None:
        payload = make_zip(
            {
                "ffmpeg-master-latest-win64-gpl/bin/ffprobe.exe": b"probe",
                "ffmpeg-master-latest-win64-gpl/bin/FFMPEG.EXE": b"new ffmpeg",
            }
        )
        checker = mock_checker(FFMPEG_RELEASE, payload)

        with patch("ytmux.updater.binaries.subprocess.run", return_value=completed(stdout=FFMPEG_VERSION_OUTPUT)):
            result = SelfUpdater(checker).check(ffmpeg)

        assert result.status == UpdateStatus.SUCCESS
        assert result.current_version == "N-113000-g1234abcd-20240101"
        assert ffmpeg.path.read_bytes() == b"new ffmpeg"
        downloaded = checker.download_asset.call_args.args[0]
        assert downloaded.name == "ffmpeg-master-latest-win64-gpl.zip"

    def test_same_tag_is_up_to_date(self, ffmpeg) -> None:
        checker = mock_checker(ReleaseInfo(tag_name="n7.0"))

        with patch("ytmux.updater.binaries.subprocess.run", return_value=completed(stdout=b"ffmpeg version n7.0 C")):
            result = SelfUpdater(checker).check(ffmpeg)

        assert result.status == UpdateStatus.UP_TO_DATE
        checker.download_asset.assert_not_called()

    def test_no_matching_asset_keeps_binary(self, ffmpeg, caplog) -> None:
        release = ReleaseInfo(tag_name="latest", assets=[FFMPEG_RELEASE.assets[0]])
        checker = mock_checker(release)

        with caplog.at_level(logging.WARNING), patch.object(
            SelfUpdater, "get_current_version", return_value="N-113000"
        ):
            result = SelfUpdater(checker).check(ffmpeg)

        assert result.status == UpdateStatus.NO_ASSET
        assert "Could not find a suitable ffmpeg update asset" in caplog.text
        assert ffmpeg.path.read_bytes() == b"old ffmpeg"
        checker.download_asset.assert_not_called()

    def test_missing_member_keeps_binary(self, ffmpeg) -> None:
        checker = mock_checker(FFMPEG_RELEASE, make_zip({"bin/ffprobe.exe": b"probe"}))

        with patch("ytmux.updater.binaries.subprocess.run", return_value=completed(stdout=FFMPEG_VERSION_OUTPUT)):
            result = SelfUpdater(checker).check(ffmpeg)

        assert result.status == UpdateStatus.ARCHIVE_FAILED
        assert ffmpeg.path.read_bytes() == b"old ffmpeg"

    def test_corrupt_archive_keeps_binary(self, ffmpeg) -> None:
        checker = mock_checker(FFMPEG_RELEASE, b"definitely not an archive")

        with patch("ytmux.updater.binaries.subprocess.run", return_value=completed(stdout=FFMPEG_VERSION_OUTPUT)):
            result = SelfUpdater(checker).check(ffmpeg)

        assert result.status == UpdateStatus.ARCHIVE_FAILED
        assert ffmpeg.path.read_bytes() == b"old ffmpeg"

    def test_raise_policy_escalates_missing_member(self, ffmpeg) -> None:
        checker = mock_checker(FFMPEG_RELEASE, make_zip({"bin/ffprobe.exe": b"probe"}))
        updater = SelfUpdater(checker, archive_failure=ArchiveFailurePolicy.RAISE)

        with patch(
            "ytmux.updater.binaries.subprocess.run", return_value=completed(stdout=FFMPEG_VERSION_OUTPUT)
        ), pytest.raises(ArchiveError):
            updater.check(ffmpeg)

        assert ffmpeg.path.read_bytes() == b"old ffmpeg"

    def test_raise_policy_escalates_download_failure(self, ffmpeg) -> None:
        checker = mock_checker(FFMPEG_RELEASE)
        checker.download_asset.side_effect = TransportError("connection reset")
        updater = SelfUpdater(checker, archive_failure=ArchiveFailurePolicy.RAISE)

        with patch(
            "ytmux.updater.binaries.subprocess.run", return_value=completed(stdout=FFMPEG_VERSION_OUTPUT)
        ), pytest.raises(TransportError):
            updater.check(ffmpeg)

    def test_unwritable_binary_is_reported_not_raised(self, ffmpeg) -> None:
        checker = mock_checker(FFMPEG_RELEASE, make_zip({"x/bin/ffmpeg.exe": b"new ffmpeg"}))

        with patch.object(SelfUpdater, "get_current_version", return_value="N-113000"), patch.object(
            Path, "write_bytes", side_effect=PermissionError("read-only")
        ):
            result = SelfUpdater(checker).check(ffmpeg)

        assert result.status == UpdateStatus.ARCHIVE_FAILED
        assert "read-only" in result.error
        assert ffmpeg.path.read_bytes() == b"old ffmpeg"

    def test_raise_policy_escalates_unwritable_binary(self, ffmpeg) -> None:
        checker = mock_checker(FFMPEG_RELEASE, make_zip({"x/bin/ffmpeg.exe": b"new ffmpeg"}))
        updater = SelfUpdater(checker, archive_failure=ArchiveFailurePolicy.RAISE)

        with patch.object(SelfUpdater, "get_current_version", return_value="N-113000"), patch.object(
            Path, "write_bytes", side_effect=PermissionError("read-only")
        ), pytest.raises(ArchiveError):
            updater.check(ffmpeg)

    def test_unsupported_platform_has_no_asset(self, tmp_path: Path) -> None:
        with patch("ytmux.updater.binaries.get_platform_tag", return_value=None):
            binary = ffmpeg_binary(tmp_path / "ffmpeg")
        checker = mock_checker(FFMPEG_RELEASE)

        with patch.object(SelfUpdater, "get_current_version", return_value="N-113000"):
            result = SelfUpdater(checker).check(binary)

        assert result.status == UpdateStatus.NO_ASSET


class TestExtractMember:
    """Tests for extract_member()."""

    def test_zip_suffix_match_is_case_insensitive(self) -> None:
        data = make_zip({"dir/": b"", "dir/bin/FFmpeg.exe": b"binary"})
        assert extract_member(data, "ffmpeg.exe") == b"binary"

    def test_tar_archive(self) -> None:
        data = make_tar({"ffmpeg-linux64/bin/ffprobe": b"probe", "ffmpeg-linux64/bin/ffmpeg": b"binary"})
        assert extract_member(data, "/bin/ffmpeg") == b"binary"

    def test_no_match(self) -> None:
        assert extract_member(make_zip({"readme.txt": b"hi"}), "ffmpeg.exe") is None

    def test_unreadable_archive(self) -> None:
        with pytest.raises(ArchiveError):
            extract_member(b"garbage", "ffmpeg.exe")


class TestHelpers:
    """Tests for small helpers."""

    def test_ffmpeg_version_token(self) -> None:
        assert third_token_of_first_line(FFMPEG_VERSION_OUTPUT.decode()) == "N-113000-g1234abcd-20240101"
        assert third_token_of_first_line("") == ""
        assert third_token_of_first_line("ffmpeg version") == ""

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_replace_binary_keeps_it_executable(self, tmp_path: Path) -> None:
        path = tmp_path / "ffmpeg"
        path.write_bytes(b"old")
        path.chmod(0o644)

        replace_binary(path, b"new")

        assert path.read_bytes() == b"new"
        assert os.access(path, os.X_OK)

    def test_replace_binary_wraps_write_errors(self, tmp_path: Path) -> None:
        path = tmp_path / "missing-dir" / "ffmpeg"

        with pytest.raises(ArchiveError, match="Failed to write"):
            replace_binary(path, b"new")

    def test_update_binaries_checks_in_order(self, yt_dlp, ffmpeg) -> None:
        updater = Mock(spec=SelfUpdater)
        updater.check.side_effect = lambda binary: binary.name

        assert update_binaries([yt_dlp, ffmpeg], updater) == ["yt-dlp", "ffmpeg"]
