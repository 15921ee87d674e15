"""End-to-end acquisition scenarios: discovery, existing-file audit, fresh download."""

from __future__ import annotations

import logging

import pytest

from PaperLaunch.ArtifactDownload.checksums import digest_file
from PaperLaunch.ArtifactDownload.errors import (
    ArtifactValidationError,
    CatalogError,
    IntegrityError,
    ResolverError,
    ValidationOutcome,
)
from PaperLaunch.ArtifactDownload.pipeline import ArtifactAcquirer, acquire_artifact
from PaperLaunch.ArtifactDownload.testing import (
    FakeCatalog,
    undecodable_name_jar_bytes,
    use_mock_transport,
)


def test_existing_jar_without_sidecar_records_digest(config, transport, catalog, make_jar):
    jar = make_jar("paper-1.21.1-100.jar")

    artifact = acquire_artifact(config, transport=transport)

    sidecar = jar.with_name("paper-1.21.1-100.jar.sha256")
    assert artifact.filename == "paper-1.21.1-100.jar"
    assert artifact.source == "discovered"
    assert sidecar.read_text(encoding="utf-8") == digest_file(jar).hexdigest()
    assert catalog.requests == []


def test_existing_jar_with_matching_sidecar(config, transport, make_jar):
    jar = make_jar()
    jar.with_name(jar.name + ".sha256").write_text(digest_file(jar).hexdigest().upper() + "\n")

    artifact = acquire_artifact(config, transport=transport)

    assert artifact.digest == digest_file(jar)


def test_sidecar_mismatch_raises_with_both_digests(config, transport, make_jar):
    jar = make_jar()
    recorded = "0" * 64
    jar.with_name(jar.name + ".sha256").write_text(recorded)

    with pytest.raises(IntegrityError) as excinfo:
        acquire_artifact(config, transport=transport)

    message = str(excinfo.value)
    assert recorded in message
    assert digest_file(jar).hexdigest() in message
    assert jar.with_name(jar.name + ".sha256").read_text() == recorded


def test_non_hex_sidecar_is_recomputed(config, transport, make_jar):
    jar = make_jar()
    sidecar = jar.with_name(jar.name + ".sha256")
    sidecar.write_text("z" * 64)

    acquire_artifact(config, transport=transport)

    assert sidecar.read_text() == digest_file(jar).hexdigest()


def test_fresh_download_of_latest(config, transport, catalog):
    artifact = acquire_artifact(config, transport=transport)

    jar = config.work_directory() / "paper-1.21.1-100.jar"
    assert artifact.source == "downloaded"
    assert artifact.path == jar
    assert jar.read_bytes() == catalog.artifacts[("1.21.1", 100)]
    assert jar.with_name(jar.name + ".sha256").read_text() == digest_file(jar).hexdigest()
    assert catalog.paths() == [
        "/v2/projects/paper",
        "/v2/projects/paper/versions/1.21.1/builds",
        "/v2/projects/paper/versions/1.21.1/builds/100",
        "/v2/projects/paper/versions/1.21.1/builds/100/downloads/paper-1.21.1-100.jar",
    ]


def test_fresh_download_of_explicit_version(config, transport, catalog):
    artifact = acquire_artifact(config, version="1.20.6", transport=transport)

    assert artifact.filename == "paper-1.20.6-150.jar"
    assert artifact.descriptor.build == 150
    assert catalog.paths()[0] == "/v2/projects/paper/versions/1.20.6/builds"


def test_configured_version_is_used_by_default(config, transport):
    config.server.minecraft_version = "1.20.6"

    assert acquire_artifact(config, transport=transport).filename == "paper-1.20.6-150.jar"


def test_invalid_candidates_are_skipped_during_discovery(config, transport, make_jar, caplog):
    (config.work_directory() / "paper-0-broken.jar").write_bytes(b"not a jar at all, definitely")
    good = make_jar("paper-1.21.1-100.jar")

    caplog.set_level(logging.WARNING)
    artifact = acquire_artifact(config, transport=transport)

    assert artifact.path == good
    assert any("paper-0-broken.jar" in record.getMessage() for record in caplog.records)


def test_discovery_ignores_other_files(config, transport, catalog, make_jar):
    make_jar("server.jar")
    make_jar("paper-notes.txt")

    artifact = acquire_artifact(config, transport=transport)

    assert artifact.source == "downloaded"
    assert catalog.requests


def test_discovery_is_lexical(config, transport, make_jar):
    make_jar("paper-1.21.1-100.jar")
    first = make_jar("paper-1.20.6-150.jar")

    acquirer = ArtifactAcquirer(config, transport=transport)

    assert acquirer.discover() == first


def test_corrupt_download_is_reported(config, catalog):
    catalog.artifacts[("1.21.1", 100)] = b"<html>maintenance</html>" * 4

    with use_mock_transport(catalog) as transport:
        with pytest.raises(ArtifactValidationError) as excinfo:
            acquire_artifact(config, transport=transport)

    assert excinfo.value.reason is ValidationOutcome.BAD_MAGIC
    jar = config.work_directory() / "paper-1.21.1-100.jar"
    assert not jar.with_name(jar.name + ".sha256").exists()


def test_descriptor_file_already_present_is_audited(config, transport, catalog, make_jar):
    # Present under the catalog name but not discoverable by the naming convention.
    config.artifact.prefix = "other-"
    jar = make_jar("paper-1.21.1-100.jar")

    artifact = acquire_artifact(config, transport=transport)

    assert artifact.source == "existing"
    assert artifact.path == jar
    assert not any("downloads" in path for path in catalog.paths())
    assert jar.with_name(jar.name + ".sha256").exists()


def test_empty_catalog_raises_resolver_error(config):
    with use_mock_transport(FakeCatalog()) as transport:
        with pytest.raises(ResolverError, match="No versions found"):
            acquire_artifact(config, transport=transport)


def test_unknown_version_raises_catalog_error(config, transport):
    with pytest.raises(CatalogError):
        acquire_artifact(config, version="0.0.1", transport=transport)


def test_audit_of_missing_file(config, transport, tmp_path):
    acquirer = ArtifactAcquirer(config, transport=transport)

    with pytest.raises(ArtifactValidationError) as excinfo:
        acquirer.audit(tmp_path / "paper-gone.jar")
    assert excinfo.value.reason is ValidationOutcome.NOT_FOUND


def test_undecodable_entry_names_do_not_abort_discovery(config, transport, make_jar, caplog):
    bad = config.work_directory() / "paper-0-bad.jar"
    bad.write_bytes(undecodable_name_jar_bytes())
    good = make_jar("paper-1.21.1-100.jar")

    caplog.set_level(logging.WARNING)
    acquirer = ArtifactAcquirer(config, transport=transport)

    assert acquirer.discover() == good
    assert any("paper-0-bad.jar" in record.getMessage() for record in caplog.records)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("paper-1.21.1-100.jar", ("1.21.1", 100)),
        ("paper-1.20.6-150.jar", ("1.20.6", 150)),
        ("paper-custom.jar", None),
        ("paper-1.21.1-rc1.jar", None),
        ("server.jar", None),
    ],
)
def test_installed_build_from_name(config, transport, name, expected):
    acquirer = ArtifactAcquirer(config, transport=transport)

    assert acquirer.installed_build(acquirer.work_dir / name) == expected


def test_update_check_is_off_by_default(config, transport, catalog, make_jar):
    old = make_jar("paper-1.21.1-99.jar")

    artifact = acquire_artifact(config, transport=transport)

    assert artifact.path == old
    assert artifact.source == "discovered"
    assert catalog.requests == []


def test_auto_update_downloads_newer_build(config, transport, catalog, make_jar):
    config.server.auto_update = True
    make_jar("paper-1.21.1-99.jar")

    artifact = acquire_artifact(config, transport=transport)

    assert artifact.source == "downloaded"
    assert artifact.filename == "paper-1.21.1-100.jar"
    assert artifact.descriptor.build == 100
    assert catalog.paths()[0] == "/v2/projects/paper/versions/1.21.1/builds"


def test_declined_update_keeps_local_build(config, transport, catalog, make_jar):
    old = make_jar("paper-1.21.1-99.jar")
    offered = []

    def decline(path, descriptor):
        offered.append((path, descriptor.build))
        return False

    artifact = acquire_artifact(
        config, transport=transport, check_updates=True, confirm_update=decline
    )

    assert offered == [(old, 100)]
    assert artifact.path == old
    assert old.with_name(old.name + ".sha256").exists()
    assert not any("downloads" in path for path in catalog.paths())


def test_confirmed_update_downloads_newer_build(config, transport, make_jar):
    make_jar("paper-1.21.1-99.jar")

    artifact = acquire_artifact(
        config, transport=transport, check_updates=True, confirm_update=lambda path, d: True
    )

    assert artifact.filename == "paper-1.21.1-100.jar"
    assert artifact.source == "downloaded"


def test_up_to_date_build_is_not_offered(config, transport, make_jar):
    current = make_jar("paper-1.21.1-100.jar")

    def refuse(path, descriptor):
        raise AssertionError("no update should be offered")

    artifact = acquire_artifact(
        config, transport=transport, check_updates=True, confirm_update=refuse
    )

    assert artifact.path == current
    assert artifact.source == "discovered"
