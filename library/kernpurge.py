#!/usr/bin/python
# -*- coding: utf-8 -*-

# Copyright: (c) 2025
# GNU General Public License v3.0+ (see COPYING or https://www.gnu.org/licenses/gpl-3.0.txt)

from __future__ import absolute_import, division, print_function
__metaclass__ = type

DOCUMENTATION = r'''
---
module: kernpurge
short_description: Purge obsolete Linux kernel releases
version_added: "0.1.0"
description:
    - Purges obsolete kernel releases on Debian/Ubuntu systems
    - Keeps the running release, held releases and the latest release of each flavor
    - Always purges packages left behind by kernels that are no longer installed
options:
    keep:
        description:
            - Number of releases to keep before the latest release of each flavor
            - When omitted, only leftover packages are purged
        type: int
    auto_only:
        description:
            - Never purge manually installed releases (requires I(keep))
        type: bool
        default: false
    manual:
        description:
            - Purge manually installed releases, keeping automatically installed ones
        type: bool
        default: false
    clear_boot:
        description:
            - Remove /boot files of the releases to purge before purging
        type: bool
        default: false
    optimize:
        description:
            - Update the bootloader configuration once after the purge
        type: bool
        default: false
author:
    - kernpurge Contributors
notes:
    - Requires root privileges unless run in check mode
    - Check mode runs apt-get in simulation mode
requirements:
    - python >= 3.7
    - kernpurge
    - dpkg and apt (Debian/Ubuntu package management)
'''

EXAMPLES = r'''
# See what keeping one older release would purge
- name: Check for obsolete kernels
  kernpurge:
    keep: 1
  check_mode: yes

# Keep one older release per flavor, leave manual installs alone
- name: Purge old kernels
  kernpurge:
    keep: 1
    auto_only: true
    optimize: true
'''

RETURN = r'''
changed:
    description: Whether any packages were purged
    type: bool
    returned: always
    sample: true
msg:
    description: Human readable message about what happened
    type: str
    returned: always
    sample: "Purged 4 package(s)"
purged_packages:
    description: Packages that were (or in check mode would be) purged
    type: list
    elements: str
    returned: always
    sample: ["linux-image-5.15.0-75-generic", "linux-modules-5.15.0-75-generic"]
purged_releases:
    description: Releases that were (or would be) purged
    type: list
    elements: str
    returned: always
    sample: ["5.15.0-75-generic"]
current_release:
    description: Currently running kernel release
    type: str
    returned: always
    sample: "5.15.0-91-generic"
reboot_required:
    description: Whether the system asks for a reboot
    type: bool
    returned: always
    sample: false
'''

from ansible.module_utils.basic import AnsibleModule

# Import kernpurge - it should be installed as a package
try:
    from kernpurge.analyzer import Policy, analyze_kernels
    from kernpurge.boot import BOOTLOADER_COMMAND, clear_boot, deferred_bootloader_hooks
    from kernpurge.detector import gather_system_state
    from kernpurge.remover import check_sudo, generate_purge_command, wait_for_package_lock
    from kernpurge.utils import needs_reboot
    KERNPURGE_AVAILABLE = True
except ImportError as e:
    KERNPURGE_AVAILABLE = False
    KERNPURGE_IMPORT_ERROR = str(e)


def _purge(module, packages):
    """
    Run apt-get purge through Ansible so its output stays out of the module result.

    Returns the error message, or None on success.
    """
    rc, _, err = module.run_command(generate_purge_command(packages))
    if rc != 0:
        return f"apt-get purge failed with exit code {rc}: {err.strip()}"
    return None


def _regenerate_bootloader(module):
    """Run update-grub once; returns the error message, or None on success."""
    bootloader = module.get_bin_path(BOOTLOADER_COMMAND)
    if not bootloader:
        return None
    rc, _, err = module.run_command([bootloader])
    if rc != 0:
        return f"{BOOTLOADER_COMMAND} failed: {err.strip()}"
    return None


def run_module():
    """Main Ansible module execution."""
    module_args = dict(
        keep=dict(type='int', required=False, default=None),
        auto_only=dict(type='bool', default=False),
        manual=dict(type='bool', default=False),
        clear_boot=dict(type='bool', default=False),
        optimize=dict(type='bool', default=False),
    )

    result = dict(
        changed=False,
        msg='',
        purged_packages=[],
        purged_releases=[],
        current_release='',
        reboot_required=False,
    )

    module = AnsibleModule(
        argument_spec=module_args,
        supports_check_mode=True
    )

    if not KERNPURGE_AVAILABLE:
        result['msg'] = f"Failed to import kernpurge: {KERNPURGE_IMPORT_ERROR}"
        module.fail_json(**result)

    params = module.params
    if params['auto_only'] and params['keep'] is None:
        result['msg'] = "auto_only requires keep"
        module.fail_json(**result)
    if params['keep'] is not None and params['manual']:
        result['msg'] = "keep and manual are mutually exclusive"
        module.fail_json(**result)
    if params['keep'] is not None and params['keep'] < 0:
        result['msg'] = "keep must not be negative"
        module.fail_json(**result)

    simulate = module.check_mode
    if not simulate and not check_sudo():
        result['msg'] = "Root privileges required to purge packages"
        module.fail_json(**result)

    policy = Policy(
        keep=params['keep'],
        auto_only=params['auto_only'],
        manual=params['manual'],
    )

    try:
        state = gather_system_state()
        result['current_release'] = str(state.current)

        analysis = analyze_kernels(state, policy)
        packages = analysis.all_packages
        result['purged_packages'] = packages
        result['purged_releases'] = analysis.purge.to_strings()

        if not packages:
            result['msg'] = "No obsolete kernel packages found"
            result['reboot_required'] = needs_reboot()
            module.exit_json(**result)

        if simulate:
            result['changed'] = True
            result['msg'] = f"Would purge {len(packages)} package(s)"
            module.exit_json(**result)

        files = []
        if params['clear_boot']:
            files = clear_boot(analysis.purge, analysis.keep)

        wait_for_package_lock()
        if params['optimize']:
            with deferred_bootloader_hooks():
                error = _purge(module, packages)
        else:
            error = _purge(module, packages)

        # Removed /boot files need a new grub config even when apt failed
        if params['optimize'] or files:
            bootloader_error = _regenerate_bootloader(module)
            error = error or bootloader_error
        if error:
            result['msg'] = error
            module.fail_json(**result)

        result['changed'] = True
        result['msg'] = f"Purged {len(packages)} package(s)"
        result['reboot_required'] = needs_reboot()
        module.exit_json(**result)

    except (RuntimeError, ValueError, PermissionError) as e:
        result['msg'] = f"Error: {e}"
        module.fail_json(**result)


def main():
    run_module()


if __name__ == '__main__':
    main()
