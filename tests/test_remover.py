"""
Unit tests for the remover module.

Tests package purging, lock polling and command generation.
"""

import unittest
from unittest.mock import patch, MagicMock

from kernpurge.remover import (
    RemovalStatus,
    check_sudo,
    fix_broken,
    generate_fix_command,
    generate_purge_command,
    package_lock_held,
    purge_packages,
    wait_for_package_lock,
)


class TestGenerateCommands(unittest.TestCase):
    """Test apt command generation."""

    def test_generate_purge_command(self):
        cmd = generate_purge_command(["linux-image-5.15.0-75-generic", "linux-headers-5.15.0-75"])

        self.assertEqual(
            cmd,
            ["apt-get", "-y", "purge", "linux-image-5.15.0-75-generic", "linux-headers-5.15.0-75"],
        )

    def test_generate_purge_command_simulate(self):
        cmd = generate_purge_command(["linux-image-5.15.0-75-generic"], simulate=True)

        self.assertEqual(cmd, ["apt-get", "-y", "--simulate", "purge", "linux-image-5.15.0-75-generic"])

    def test_generate_purge_command_empty(self):
        """Test that an empty package list is rejected."""
        with self.assertRaises(ValueError) as ctx:
            generate_purge_command([])

        self.assertIn("No packages", str(ctx.exception))

    def test_generate_fix_command(self):
        self.assertEqual(generate_fix_command(), ["apt-get", "-y", "-f", "install"])
        self.assertEqual(
            generate_fix_command(simulate=True),
            ["apt-get", "-y", "--simulate", "-f", "install"],
        )


class TestCheckSudo(unittest.TestCase):
    """Test privilege detection."""

    @patch('os.geteuid', return_value=0)
    def test_root(self, mock_geteuid):
        self.assertTrue(check_sudo())

    @patch('os.geteuid', return_value=1000)
    def test_not_root(self, mock_geteuid):
        self.assertFalse(check_sudo())


class TestPackageLock(unittest.TestCase):
    """Test package manager lock polling."""

    @patch('kernpurge.remover.run_command')
    @patch('kernpurge.remover.os.path.exists', return_value=True)
    @patch('kernpurge.remover.which', return_value="/usr/bin/fuser")
    def test_lock_held(self, mock_which, mock_exists, mock_run):
        mock_run.return_value = (0, "12345", "")

        self.assertTrue(package_lock_held(["/var/lib/dpkg/lock"]))
        mock_run.assert_called_once_with(["fuser", "/var/lib/dpkg/lock"], check=False)

    @patch('kernpurge.remover.run_command')
    @patch('kernpurge.remover.os.path.exists', return_value=True)
    @patch('kernpurge.remover.which', return_value="/usr/bin/fuser")
    def test_lock_free(self, mock_which, mock_exists, mock_run):
        mock_run.return_value = (1, "", "")

        self.assertFalse(package_lock_held(["/var/lib/dpkg/lock"]))

    @patch('kernpurge.remover.run_command')
    @patch('kernpurge.remover.os.path.exists', return_value=False)
    @patch('kernpurge.remover.which', return_value="/usr/bin/fuser")
    def test_missing_lock_files(self, mock_which, mock_exists, mock_run):
        self.assertFalse(package_lock_held())
        mock_run.assert_not_called()

    @patch('kernpurge.remover.which', return_value=None)
    def test_without_fuser(self, mock_which):
        with self.assertLogs("kernpurge.remover", level="WARNING"):
            self.assertFalse(package_lock_held())

    @patch('kernpurge.remover.package_lock_held')
    def test_wait_until_free(self, mock_held):
        """Test that the lock is polled until it is released."""
        mock_held.side_effect = [True, True, True, False]
        sleeps = []

        waits = wait_for_package_lock(interval=2, sleep=sleeps.append)

        self.assertEqual(waits, 3)
        self.assertEqual(sleeps, [2, 2, 2])

    @patch('kernpurge.remover.package_lock_held', return_value=False)
    def test_no_wait_when_free(self, mock_held):
        sleeps = []

        self.assertEqual(wait_for_package_lock(sleep=sleeps.append), 0)
        self.assertEqual(sleeps, [])


class TestPurgePackages(unittest.TestCase):
    """Test package purging."""

    def test_purge_nothing(self):
        self.assertEqual(purge_packages([]), [])

    @patch('kernpurge.remover.check_sudo', return_value=False)
    def test_purge_without_root(self, mock_sudo):
        with self.assertRaises(PermissionError):
            purge_packages(["linux-image-5.15.0-75-generic"])

    @patch('kernpurge.remover.subprocess.run')
    @patch('kernpurge.remover.check_sudo', return_value=False)
    def test_purge_simulate(self, mock_sudo, mock_run):
        """Test that simulation needs no root and reports skipped packages."""
        mock_run.return_value = MagicMock(returncode=0)

        results = purge_packages(["linux-image-5.15.0-75-generic"], simulate=True)

        self.assertEqual(results, [("linux-image-5.15.0-75-generic", RemovalStatus.SKIPPED)])
        self.assertEqual(
            mock_run.call_args[0][0],
            ["apt-get", "-y", "--simulate", "purge", "linux-image-5.15.0-75-generic"],
        )

    @patch('kernpurge.remover.subprocess.run')
    @patch('kernpurge.remover.wait_for_package_lock')
    @patch('kernpurge.remover.check_sudo', return_value=True)
    def test_purge_success(self, mock_sudo, mock_wait, mock_run):
        mock_run.return_value = MagicMock(returncode=0)
        packages = ["linux-image-5.15.0-75-generic", "linux-modules-5.15.0-75-generic"]

        results = purge_packages(packages)

        mock_wait.assert_called_once()
        self.assertEqual([status for _, status in results], [RemovalStatus.SUCCESS] * 2)

    @patch('kernpurge.remover.subprocess.run')
    @patch('kernpurge.remover.wait_for_package_lock')
    @patch('kernpurge.remover.check_sudo', return_value=True)
    def test_purge_failure(self, mock_sudo, mock_wait, mock_run):
        mock_run.return_value = MagicMock(returncode=100)

        with self.assertRaises(RuntimeError) as ctx:
            purge_packages(["linux-image-5.15.0-75-generic"])

        self.assertIn("exit code 100", str(ctx.exception))

    @patch('kernpurge.remover.subprocess.run')
    @patch('kernpurge.remover.wait_for_package_lock')
    @patch('kernpurge.remover.check_sudo', return_value=True)
    def test_purge_apt_missing(self, mock_sudo, mock_wait, mock_run):
        mock_run.side_effect = FileNotFoundError("apt-get")

        with self.assertRaises(RuntimeError):
            purge_packages(["linux-image-5.15.0-75-generic"])


class TestFixBroken(unittest.TestCase):
    """Test broken package state repair."""

    @patch('kernpurge.remover.subprocess.run')
    def test_fix_broken_simulate(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)

        self.assertTrue(fix_broken(simulate=True))
        self.assertEqual(mock_run.call_args[0][0], ["apt-get", "-y", "--simulate", "-f", "install"])

    @patch('kernpurge.remover.subprocess.run')
    @patch('kernpurge.remover.wait_for_package_lock')
    @patch('kernpurge.remover.check_sudo', return_value=True)
    def test_fix_broken_failure(self, mock_sudo, mock_wait, mock_run):
        mock_run.return_value = MagicMock(returncode=100)

        self.assertFalse(fix_broken())

    @patch('kernpurge.remover.check_sudo', return_value=False)
    def test_fix_broken_without_root(self, mock_sudo):
        with self.assertRaises(PermissionError):
            fix_broken()


if __name__ == "__main__":
    unittest.main()
