"""Centralize running of external commands, providing logging and tracking.
"""
import collections
import os
import subprocess

from methylflow import utils
from methylflow.log import logger, logger_cl, logger_stdout

# lines of tool output retained for failure diagnostics
DIAGNOSTIC_LINES = 100


class ExternalToolFailure(Exception):
    """An external program exited non-zero or did not produce its declared outputs.
    """
    def __init__(self, cmd, exitcode, diagnostics=""):
        self.cmd = cmd
        self.exitcode = exitcode
        self.diagnostics = diagnostics
        super(ExternalToolFailure, self).__init__(
            "%s exited with status %s" % (_cmd_str(cmd), exitcode))


def run(cmd, descr=None, data=None, checks=None, log_stdout=False, env=None, cwd=None):
    """Run the provided command, logging details and checking for errors.
    """
    if descr:
        descr = _descr_str(descr, data)
        logger.debug(descr)
    logger_cl.debug(_cmd_str(cmd))
    try:
        _do_run(cmd, checks, log_stdout, env=env, cwd=cwd)
    except ExternalToolFailure as e:
        logger.error("%s failed with status %s" % (descr or _cmd_str(cmd), e.exitcode))
        raise

def _cmd_str(cmd):
    return cmd if isinstance(cmd, str) else " ".join(str(x) for x in cmd)

def _descr_str(descr, data):
    """Add sample details from the unit being processed to the description string.
    """
    if data is not None and getattr(data, "sample", None):
        descr = "{0} : {1}".format(descr, data.sample)
        if getattr(data, "origin", None) and data.origin != "none":
            descr = "{0} ({1})".format(descr, data.origin)
    return descr

def find_bash():
    for test_bash in [find_cmd("bash"), "/bin/bash", "/usr/bin/bash", "/usr/local/bin/bash"]:
        if test_bash and os.path.exists(test_bash):
            return test_bash
    raise IOError("Could not find bash in any standard location. Needed for unix pipes")

def find_cmd(cmd):
    try:
        return subprocess.check_output(["which", cmd]).decode().strip()
    except subprocess.CalledProcessError:
        return None

def _normalize_cmd_args(cmd):
    """Normalize subprocess arguments to handle list commands, string and pipes.
    Piped commands set pipefail and require use of bash to help with debugging
    intermediate errors.
    """
    if isinstance(cmd, str):
        # check for standard or anonymous named pipes
        if cmd.find(" | ") > 0 or cmd.find(">(") >= 0 or cmd.find("<(") >= 0:
            return "set -o pipefail; " + cmd, True, find_bash()
        else:
            return cmd, True, None
    else:
        return [str(x) for x in cmd], False, None

def _do_run(cmd, checks, log_stdout=False, env=None, cwd=None):
    """Perform running and check results, raising errors for issues.
    """
    cmd, shell_arg, executable_arg = _normalize_cmd_args(cmd)
    try:
        s = subprocess.Popen(
            cmd,
            shell=shell_arg,
            executable=executable_arg,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            close_fds=True,
            env=env,
            cwd=cwd,
        )
    except OSError as e:
        # missing executables for list commands never reach a shell
        raise ExternalToolFailure(cmd, 127, str(e))
    debug_stdout = collections.deque(maxlen=DIAGNOSTIC_LINES)
    with s.stdout:
        for raw in s.stdout:
            line = raw.decode("utf-8", errors="replace")
            if line.rstrip():
                debug_stdout.append(line)
                if log_stdout:
                    logger_stdout.debug(line.rstrip())
                else:
                    logger.debug(line.rstrip())
    exitcode = s.wait()
    if exitcode != 0:
        raise ExternalToolFailure(cmd, exitcode, "".join(debug_stdout))
    # Check for problems not identified by shell return codes
    if checks:
        failed = [check.target for check in checks if not check()]
        if failed:
            raise ExternalToolFailure(cmd, exitcode,
                                      "Missing expected output files: %s" % ", ".join(failed))

# checks for validating run completed successfully

def file_nonempty(target_file):
    def check():
        ok = utils.file_exists(target_file)
        if not ok:
            logger.info("Did not find non-empty output file {0}".format(target_file))
        return ok
    check.target = target_file
    return check

def file_exists(target_file):
    def check():
        ok = os.path.exists(target_file)
        if not ok:
            logger.info("Did not find output file {0}".format(target_file))
        return ok
    check.target = target_file
    return check
