"""Tests for buildstd_tooling.progress."""

import io


class TestProgressReporter:
    def test_renders_cargo_style_lines(self) -> None:
        from buildstd_tooling.progress import ProgressReporter

        stream = io.StringIO()
        reporter = ProgressReporter(stream=stream)
        reporter.emit("Compiling", "core (x86_64-unknown-none)")
        reporter.emit("error", "could not compile `app`")
        assert stream.getvalue().splitlines() == [
            "   Compiling core (x86_64-unknown-none)",
            "error: could not compile `app`",
        ]

    def test_quiet_still_records(self) -> None:
        from buildstd_tooling.progress import ProgressReporter

        stream = io.StringIO()
        reporter = ProgressReporter(stream=stream, quiet=True)
        reporter.emit("Fresh", "core")
        assert stream.getvalue() == ""
        assert reporter.statuses() == ["Fresh"]

    def test_filters_see_every_event(self) -> None:
        from buildstd_tooling.progress import ProgressReporter

        seen = []
        reporter = ProgressReporter(quiet=True)
        reporter.add_filter(lambda e: seen.append(e.status))
        reporter.emit("Compiling", "core")
        reporter.emit("Finished", "dev")
        assert seen == ["Compiling", "Finished"]
