"""Tests for buildstd_tooling.artifacts."""

from pathlib import Path

import pytest


def _touch(d: Path, *names: str) -> list[Path]:
    d.mkdir(parents=True, exist_ok=True)
    out = []
    for n in names:
        p = d / n
        p.write_text("")
        out.append(p)
    return out


class TestClassify:
    @pytest.mark.parametrize(
        ("name", "kind"),
        [
            ("libstd-0123abcd.rlib", "STATIC_LIB"),
            ("libfoo.a", "STATIC_LIB"),
            ("foo.lib", "STATIC_LIB"),
            ("libstd-0123abcd.so", "DYNAMIC_LIB"),
            ("libstd-0123abcd.dylib", "DYNAMIC_LIB"),
            ("std-0123abcd.dll", "DYNAMIC_LIB"),
            ("std-0123abcd.dll.lib", "DYNAMIC_LIB"),
            ("libstd-0123abcd.dll.a", "DYNAMIC_LIB"),
            ("libcore-0123abcd.rmeta", "METADATA"),
            ("core-0123abcd.d", "DEP_INFO"),
            ("app-0123abcd", "EXECUTABLE"),
            ("app-0123abcd.exe", "EXECUTABLE"),
            ("app-0123abcd.pdb", "OTHER"),
        ],
    )
    def test_kinds(self, name: str, kind: str) -> None:
        from buildstd_tooling.artifacts import ArtifactKind, classify

        assert classify(name) is ArtifactKind[kind]


class TestFilterRecord:
    def test_removes_dylib_keeps_rlib(self, tmp_path: Path) -> None:
        from buildstd_tooling.artifacts import ArtifactRecord, filter_record

        files = _touch(
            tmp_path, "libstd-aa.rlib", "libstd-aa.rmeta", "libstd-aa.so", "std-aa.d"
        )
        kept = filter_record(ArtifactRecord("std", "key", tuple(files)))
        assert not (tmp_path / "libstd-aa.so").exists()
        assert (tmp_path / "libstd-aa.rlib").exists()
        assert [f.name for f in kept.files] == ["libstd-aa.rlib", "libstd-aa.rmeta", "std-aa.d"]

    def test_idempotent(self, tmp_path: Path) -> None:
        from buildstd_tooling.artifacts import ArtifactRecord, filter_record

        files = _touch(tmp_path, "libtest-aa.rlib", "libtest-aa.dylib")
        record = ArtifactRecord("test", "key", tuple(files))
        first = filter_record(record)
        second = filter_record(record)
        assert first == second
        assert sorted(p.name for p in tmp_path.iterdir()) == ["libtest-aa.rlib"]

    def test_no_static_artifact_left_is_an_error(self, tmp_path: Path) -> None:
        from buildstd_tooling.artifacts import ArtifactRecord, filter_record
        from buildstd_tooling.errors import ArtifactFilterError

        files = _touch(tmp_path, "libstd-aa.so", "std-aa.d")
        with pytest.raises(ArtifactFilterError, match="`std`"):
            filter_record(ArtifactRecord("std", "0123456789abcdef", tuple(files)))

    def test_linkable(self, tmp_path: Path) -> None:
        from buildstd_tooling.artifacts import ArtifactKind, ArtifactRecord

        files = _touch(tmp_path, "libcore-aa.rlib", "libcore-aa.rmeta", "core-aa.d")
        record = ArtifactRecord("core", "key", tuple(files))
        assert len(record.linkable) == 2
        assert record.of_kind(ArtifactKind.DEP_INFO) == [tmp_path / "core-aa.d"]


class TestFilterOutputDir:
    def test_removes_only_named_crates(self, tmp_path: Path) -> None:
        from buildstd_tooling.artifacts import filter_output_dir

        deps = tmp_path / "deps"
        _touch(
            deps,
            "libstd-aa.rlib",
            "libstd-aa.so",
            "std-aa.dll",
            "libapp-bb.so",
            "libcore-cc.rmeta",
        )
        removed = filter_output_dir(deps, ["std", "core"])
        assert sorted(p.name for p in removed) == ["libstd-aa.so", "std-aa.dll"]
        assert sorted(p.name for p in deps.iterdir()) == [
            "libapp-bb.so",
            "libcore-cc.rmeta",
            "libstd-aa.rlib",
        ]

    def test_missing_dir(self, tmp_path: Path) -> None:
        from buildstd_tooling.artifacts import filter_output_dir

        assert filter_output_dir(tmp_path / "nope", ["std"]) == []


class TestUpliftRecord:
    def test_strips_hash_suffix(self, tmp_path: Path) -> None:
        from buildstd_tooling.artifacts import ArtifactRecord, uplift_record

        files = _touch(tmp_path / "deps", "libapp-ab12.rlib", "libapp-ab12.rmeta", "app-ab12.d")
        record = ArtifactRecord("app", "k", tuple(files))
        copied = uplift_record(record, tmp_path, "-ab12")
        assert copied == [tmp_path / "libapp.rlib"]
        assert (tmp_path / "deps" / "libapp-ab12.rlib").exists()

    def test_executable_named_after_package(self, tmp_path: Path) -> None:
        from buildstd_tooling.artifacts import ArtifactRecord, uplift_record

        files = _touch(tmp_path / "deps", "my_tool-ab12", "libmy_tool-ab12.rmeta")
        record = ArtifactRecord("my-tool", "k", tuple(files))
        copied = uplift_record(record, tmp_path / "out", "-ab12", bin_name="my-tool")
        assert copied == [tmp_path / "out" / "my-tool"]
        assert copied[0].stat().st_mode & 0o111
