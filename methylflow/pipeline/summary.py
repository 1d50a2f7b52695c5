"""Summarize the outcome of a run for people and for notification hooks.
"""
import os

import logbook
import yaml

from methylflow import utils
from methylflow.distributed.transaction import file_transaction
from methylflow.log import LOG_NAME, logger
from methylflow.pipeline import datadict as dd

logger_notify = logbook.Logger(LOG_NAME + "-notify")

# diagnostic lines shown per failure in the summary printed at the end of a run
SUMMARY_DIAGNOSTIC_LINES = 10

def _is_notify(record, _):
    return record.channel == LOG_NAME + "-notify"

def human_summary(outcome):
    """Text summary enumerating every failed branch with its diagnostics.
    """
    status = "succeeded" if outcome.success else "FAILED"
    lines = ["Run %s in %s" % (status, outcome.finished - outcome.started)]
    for name, state in sorted(outcome.states.items()):
        lines.append("  %-40s %s" % (name, state))
    if outcome.failures:
        lines.append("%s failed branch(es):" % len(outcome.failures))
        for failure in outcome.failures:
            lines.append("  - %s" % failure.describe())
            diag = [x for x in failure.diagnostics.splitlines() if x.strip()]
            for line in diag[-SUMMARY_DIAGNOSTIC_LINES:]:
                lines.append("      %s" % line)
    if outcome.incomplete:
        lines.append("%s incomplete group(s) dropped:" % len(outcome.incomplete))
        for err in outcome.incomplete:
            lines.append("  - %s" % err)
    if outcome.published:
        lines.append("%s output file(s) published" % sum(len(u.files) for u in outcome.published))
    return "\n".join(lines)

def outcome_dict(outcome, config):
    """Flat key/value view of the run outcome for notification collaborators.
    """
    out = {"success": outcome.success,
           "started": outcome.started.isoformat(),
           "finished": outcome.finished.isoformat(),
           "duration": (outcome.finished - outcome.started).total_seconds(),
           "failed_branches": len(outcome.failures),
           "incomplete_groups": len(outcome.incomplete),
           "published_files": sum(len(u.files) for u in outcome.published),
           "error": "\n".join(f.describe() for f in outcome.failures),
           "config_file": config.get("config_file", ""),
           "work_dir": dd.get_work_dir(config),
           "outdir": dd.get_outdir(config)}
    for name, state in outcome.states.items():
        out["stage.%s" % name] = state
    return out

def notify(outcome, config):
    """Write the flat run summary into the output directory, mailing it when configured.

    Returns the written summary file.
    """
    info = outcome_dict(outcome, config)
    out_dir = utils.safe_makedir(os.path.join(dd.get_outdir(config), "pipeline_info"))
    out_file = os.path.join(out_dir, "run_summary.yaml")
    with file_transaction(config, out_file) as tx_out_file:
        with open(tx_out_file, "w") as out_handle:
            yaml.safe_dump(info, out_handle, default_flow_style=False, allow_unicode=False)
    logger.info("Run summary written to %s" % out_file)
    email = dd.get_email(config)
    if email:
        email_str = u'''Subject: [methylflow] {record.extra[status]} \n\n {record.message}'''
        handler = logbook.MailHandler(email, [email], format_string=email_str,
                                      level="INFO", filter=_is_notify, bubble=True)
        with handler.threadbound():
            logger_notify.info(yaml.safe_dump(info, default_flow_style=False),
                               extra={"status": "success" if outcome.success else "failed"})
    return out_file
