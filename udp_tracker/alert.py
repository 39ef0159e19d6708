"""
alert.py - External alert script invocation.

Probes call the alert hook on the first failed wait of a cycle. The script
is launched and left running; its exit status and output are never read.
"""

import logging
import subprocess
import threading

from . import config


def resolve_script(value):
    """Map the CLI script argument to a path, or None for the no-script sentinel."""
    if value is None or value == config.NO_SCRIPT or not value.strip():
        return None
    return value


class ScriptAlert:
    def __init__(self, logger=None, runner=subprocess.Popen):
        self.logger = logger or logging.getLogger(__name__)
        self.runner = runner

    def invoke(self, script_path, attempt_number):
        """
        Launch script_path with the attempt number as its only argument.

        A missing script (None or the sentinel) is a no-op. Launch failures
        are logged, never raised.
        """
        script_path = resolve_script(script_path)
        if script_path is None:
            return

        self.logger.info(f"Calling alert script {script_path} (attempt {attempt_number})")
        try:
            process = self.runner(
                [script_path, str(attempt_number)],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to run alert script {script_path}: {e}")
            return

        # Reap the child in the background so it never lingers as a zombie
        try:
            threading.Thread(target=process.wait, name="alert-reaper", daemon=True).start()
        except RuntimeError as e:
            self.logger.error(f"Could not watch alert script {script_path}: {e}")
