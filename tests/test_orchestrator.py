"""End-to-end runs of the orchestrator with faked network and OS."""

from dataclasses import replace

import pytest

from espresso_install.errors import (
    ComponentInstallError,
    DownloadFailed,
    InstallError,
    PrivilegeError,
    ResolutionError,
    UninstallError,
)
from espresso_install.orchestrator import Orchestrator
from espresso_install.privilege import PrivilegeGate

from .conftest import PRIOR, RELEASE_URL, FakePlatformInstaller, FakeResponse, release_payload

PACKAGE_URL = "https://downloads.example.com/espresso-agent-1.2.0.pkg"


@pytest.fixture
def staging(temp_dir):
    path = temp_dir / "staging"
    path.mkdir()
    return path


@pytest.fixture
def published(session, sources):
    session.add(sources.release_index, FakeResponse(json_data=release_payload()))
    session.add(PACKAGE_URL, FakeResponse(content=b"pkg-bytes"))
    return session


def make_orchestrator(
    config, sources, session, executor, platform_installer, temp_dir, staging=None, elevated=True, log_path=None
):
    return Orchestrator(
        config,
        sources,
        gate=PrivilegeGate(config.platform, is_elevated=lambda: elevated),
        executor=executor,
        session=session,
        platform_installer=platform_installer,
        log_path=log_path or temp_dir / "install.log",
        staging_dir=staging,
        progress=lambda message: None,
    )


def test_release_index_is_the_packaged_one(sources):
    assert sources.release_index == RELEASE_URL


def test_fresh_install(run_config, sources, published, executor, staging, temp_dir):
    platform_installer = FakePlatformInstaller()

    report = make_orchestrator(
        run_config, sources, published, executor, platform_installer, temp_dir, staging
    ).run()

    assert report.result.succeeded
    assert report.artifact.version == "1.2.0"
    assert report.components == []
    assert platform_installer.install_args[0] == staging / "espresso-agent-1.2.0.pkg"
    assert platform_installer.install_args[2:] == ("backend.example.com", "tok-123")
    assert platform_installer.quarantined == [staging / "espresso-agent-1.2.0.pkg"]
    assert "espresso-agent-1.2.0.pkg" in (temp_dir / "install.log").read_text()


def test_upgrade_reports_prior_version(run_config, sources, published, executor, staging, temp_dir):
    platform_installer = FakePlatformInstaller(detections=[PRIOR, None])

    report = make_orchestrator(
        run_config, sources, published, executor, platform_installer, temp_dir, staging
    ).run()

    assert report.result.prior_version == "1.1.0"
    assert platform_installer.calls.index("uninstall") < platform_installer.calls.index("install")


def test_privilege_failure_stops_everything(run_config, sources, published, executor, temp_dir):
    platform_installer = FakePlatformInstaller()

    with pytest.raises(PrivilegeError):
        make_orchestrator(
            run_config, sources, published, executor, platform_installer, temp_dir, elevated=False
        ).run()

    assert published.calls == []
    assert platform_installer.calls == []


def test_unsupported_arch_makes_no_requests(run_config, sources, session, executor, temp_dir):
    config = replace(run_config, arch="riscv64")

    with pytest.raises(ResolutionError):
        make_orchestrator(config, sources, session, executor, FakePlatformInstaller(), temp_dir).run()

    assert session.calls == []


def test_download_failure_never_touches_installer(run_config, sources, session, executor, sleeper, temp_dir):
    session.add(sources.release_index, FakeResponse(json_data=release_payload()))
    session.add(PACKAGE_URL, FakeResponse(status_code=500))
    platform_installer = FakePlatformInstaller()

    with pytest.raises(DownloadFailed):
        make_orchestrator(run_config, sources, session, executor, platform_installer, temp_dir).run()

    assert platform_installer.calls == []
    assert sleeper.delays == [2, 4]


def test_install_failure_is_raised_and_components_skipped(
    run_config, sources, published, executor, staging, temp_dir
):
    config = replace(run_config, install_jq=True)
    platform_installer = FakePlatformInstaller(detections=[PRIOR])

    with pytest.raises(UninstallError):
        make_orchestrator(config, sources, published, executor, platform_installer, temp_dir, staging).run()

    assert "install" not in platform_installer.calls
    assert "make_executable" not in platform_installer.calls


def test_components_run_after_agent(run_config, sources, published, executor, staging, temp_dir, monkeypatch):
    config = replace(run_config, install_jq=True)
    jq_url = sources.jq.urls["darwin"]["arm64"]
    published.add(jq_url, FakeResponse(content=b"jq"))
    destination = temp_dir / "bin" / "jq"
    monkeypatch.setitem(sources.jq.destination, "darwin", destination)
    platform_installer = FakePlatformInstaller()

    report = make_orchestrator(
        config, sources, published, executor, platform_installer, temp_dir, staging
    ).run()

    assert [outcome.name for outcome in report.components] == ["jq"]
    assert destination.read_bytes() == b"jq"
    assert platform_installer.calls.index("version") < platform_installer.calls.index("make_executable")


def test_component_failure_fails_the_run(run_config, sources, published, executor, sleeper, staging, temp_dir, monkeypatch):
    config = replace(run_config, install_jq=True)
    published.add(sources.jq.urls["darwin"]["arm64"], FakeResponse(status_code=404))
    monkeypatch.setitem(sources.jq.destination, "darwin", temp_dir / "bin" / "jq")

    with pytest.raises(ComponentInstallError) as exc_info:
        make_orchestrator(
            config, sources, published, executor, FakePlatformInstaller(), temp_dir, staging
        ).run()

    assert exc_info.value.component == "jq"
    # Only the component policy retries; the download inside it is a single attempt.
    assert sleeper.delays == [5, 5]


def test_build_components_order(run_config, sources, executor, session, temp_dir):
    config = replace(run_config, install_jq=True, install_extension=True, install_antivirus=True)
    orchestrator = make_orchestrator(config, sources, session, executor, FakePlatformInstaller(), temp_dir)

    names = [c.name for c in orchestrator.build_components(FakePlatformInstaller(), temp_dir)]

    assert names == ["jq", "browser extension", "antivirus engine"]


def test_owned_staging_dir_is_removed(run_config, sources, published, executor, temp_dir, monkeypatch):
    created = temp_dir / "owned"
    created.mkdir()
    monkeypatch.setattr("espresso_install.orchestrator.create_staging_dir", lambda: created)

    make_orchestrator(run_config, sources, published, executor, FakePlatformInstaller(), temp_dir).run()

    assert not created.exists()


def test_keep_staging(run_config, sources, published, executor, temp_dir, monkeypatch):
    created = temp_dir / "owned"
    created.mkdir()
    monkeypatch.setattr("espresso_install.orchestrator.create_staging_dir", lambda: created)
    config = replace(run_config, keep_staging=True)

    make_orchestrator(config, sources, published, executor, FakePlatformInstaller(), temp_dir).run()

    assert (created / "espresso-agent-1.2.0.pkg").exists()


def test_unwritable_install_log_is_install_error(run_config, sources, published, executor, staging, temp_dir):
    platform_installer = FakePlatformInstaller()
    log_path = temp_dir / "missing-dir" / "install.log"

    with pytest.raises(InstallError, match="install log") as exc_info:
        make_orchestrator(
            run_config, sources, published, executor, platform_installer, temp_dir, staging, log_path=log_path
        ).run()

    assert exc_info.value.stage == "install"
    assert "install" not in platform_installer.calls


def test_staging_dir_failure_is_install_error(run_config, sources, published, executor, temp_dir, monkeypatch):
    def fail():
        raise PermissionError(13, "Permission denied", "/tmp")

    monkeypatch.setattr("espresso_install.orchestrator.create_staging_dir", fail)
    platform_installer = FakePlatformInstaller()

    with pytest.raises(InstallError, match="staging directory"):
        make_orchestrator(run_config, sources, published, executor, platform_installer, temp_dir).run()

    assert PACKAGE_URL not in published.urls
    assert platform_installer.calls == []


def test_unwritable_staging_file_is_download_failure(run_config, sources, published, executor, sleeper, temp_dir):
    not_a_dir = temp_dir / "staging"
    not_a_dir.write_bytes(b"")
    platform_installer = FakePlatformInstaller()

    with pytest.raises(DownloadFailed) as exc_info:
        make_orchestrator(
            run_config, sources, published, executor, platform_installer, temp_dir, not_a_dir
        ).run()

    assert exc_info.value.url == PACKAGE_URL
    assert sleeper.delays == []
    assert platform_installer.calls == []


def test_installer_owned_log_gets_no_header(run_config, sources, published, executor, staging, temp_dir):
    log_path = temp_dir / "install.log"
    log_path.write_text("stale run\n", encoding="utf-8")
    platform_installer = FakePlatformInstaller(writes_own_log=True)

    report = make_orchestrator(
        run_config, sources, published, executor, platform_installer, temp_dir, staging
    ).run()

    assert report.result.succeeded
    assert platform_installer.install_args[1] == log_path
    assert not log_path.exists()
