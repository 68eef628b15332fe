"""
Unit tests for the reporter module.

Tests output formatting of the analysis, commands and summaries.
"""

import unittest
from io import StringIO
from unittest.mock import patch

from kernpurge.analyzer import Policy, analyze_kernels
from kernpurge.remover import RemovalStatus
from kernpurge.reporter import Reporter

from helpers import images, make_state


class TestReporterOutput(unittest.TestCase):
    """Test Reporter output formatting."""

    def setUp(self):
        """Set up test fixtures."""
        pairs = images("5.15.0-75-generic", "5.15.0-82-generic", "5.15.0-91-generic") + [
            ("rc", "linux-image-5.15.0-70-generic"),
        ]
        self.state = make_state(
            pairs,
            current="5.15.0-82-generic",
            latest=["5.15.0-91-generic"],
            manual=["5.15.0-75-generic"],
        )
        self.result = analyze_kernels(self.state, Policy(keep=0))

    def _analysis_output(self, reporter):
        with patch('sys.stdout', new=StringIO()) as fake_out:
            reporter.print_analysis(self.result, self.state)
            return fake_out.getvalue()

    def test_print_analysis(self):
        output = self._analysis_output(Reporter())

        self.assertIn("Reading package lists", output)
        self.assertIn("Current release: 5.15.0-82-generic", output)
        self.assertIn("purge  5.15.0-75-generic  M", output)
        self.assertIn("keep   5.15.0-82-generic  C", output)
        self.assertIn("keep   5.15.0-91-generic  L", output)
        self.assertIn("2 to purge", output)

    def test_orphans_marked(self):
        output = self._analysis_output(Reporter())

        self.assertIn("linux-image-5.15.0-70-generic (orphan)", output)
        self.assertIn("  linux-image-5.15.0-75-generic\n", output)

    def test_legend(self):
        output = self._analysis_output(Reporter())
        self.assertIn("Legend:", output)
        self.assertIn("manually installed", output)

    def test_no_legend(self):
        output = self._analysis_output(Reporter(legend=False))
        self.assertNotIn("Legend:", output)

    def test_nothing_to_purge(self):
        state = make_state(images("5.15.0-82-generic"), current="5.15.0-82-generic")
        result = analyze_kernels(state, Policy())

        with patch('sys.stdout', new=StringIO()) as fake_out:
            Reporter().print_analysis(result, state)
            output = fake_out.getvalue()

        self.assertIn("0 to purge", output)
        self.assertNotIn("PURGED", output)


class TestReporterProgress(unittest.TestCase):
    """Test command, progress and summary output."""

    def setUp(self):
        self.reporter = Reporter()

    def test_print_command(self):
        with patch('sys.stdout', new=StringIO()) as fake_out:
            self.reporter.print_command(["apt-get", "-y", "purge", "foo"])
            output = fake_out.getvalue()

        self.assertIn("Executing: apt-get -y purge foo", output)
        self.assertNotIn("SIMULATE", output)

    def test_print_command_simulate(self):
        with patch('sys.stdout', new=StringIO()) as fake_out:
            self.reporter.print_command(["apt-get", "-y", "--simulate", "purge", "foo"], simulate=True)
            output = fake_out.getvalue()

        self.assertIn("[SIMULATE] Executing:", output)

    def test_removal_progress(self):
        with patch('sys.stdout', new=StringIO()) as fake_out:
            self.reporter.print_removal_progress("foo", RemovalStatus.SUCCESS)
            self.reporter.print_removal_progress("bar", RemovalStatus.FAILED)
            self.reporter.print_removal_progress("baz", RemovalStatus.SKIPPED)
            output = fake_out.getvalue()

        self.assertIn("Purged foo", output)
        self.assertIn("Failed to purge bar", output)
        self.assertIn("Would purge baz", output)

    def test_summary(self):
        with patch('sys.stdout', new=StringIO()) as fake_out:
            self.reporter.print_summary(3, 1)
            output = fake_out.getvalue()

        self.assertIn("Successfully purged 3 package(s).", output)
        self.assertIn("Failed to purge 1 package(s).", output)
        self.assertIn("Done.", output)

    def test_summary_simulate(self):
        with patch('sys.stdout', new=StringIO()) as fake_out:
            self.reporter.print_summary(3, 0, simulate=True)
            output = fake_out.getvalue()

        self.assertIn("3 package(s) would be purged", output)
        self.assertNotIn("Done.", output)

    def test_boot_files(self):
        with patch('sys.stdout', new=StringIO()) as fake_out:
            self.reporter.print_boot_files(["/boot/vmlinuz-5.15.0-75-generic"], simulate=True)
            self.reporter.print_boot_files([])
            output = fake_out.getvalue()

        self.assertIn("Would remove 1 file(s) from /boot:", output)
        self.assertEqual(output.count("/boot/vmlinuz"), 1)


if __name__ == "__main__":
    unittest.main()
