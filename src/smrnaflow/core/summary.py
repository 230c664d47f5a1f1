"""Run summary accumulation, report rendering and completion e-mail."""

from __future__ import annotations

import json
import smtplib
import socket
import threading
from collections import OrderedDict
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from smrnaflow.__version__ import __version__
from smrnaflow.core.pipeline_types import ReportKeys, RunResult, TaskRecord, TaskStatus
from smrnaflow.exceptions import (
    ExternalToolError,
    NotificationDeliveryFailure,
    PipelineError,
)
from smrnaflow.external.mail import MailCommand
from smrnaflow.utils.logging import get_logger


class RunSummary:
    """Ordered run parameters plus one message per finished task instance.

    Fields and records may be added until the summary is frozen; rendering a
    report freezes it.
    """

    def __init__(self, run_name: Optional[str] = None):
        self.run_name = run_name or datetime.now().strftime("smrnaflow_%Y%m%d_%H%M%S")
        self._fields: "OrderedDict[str, Any]" = OrderedDict()
        self._records: List[TaskRecord] = []
        self._lock = threading.Lock()
        self._frozen = False
        self.result: Optional[RunResult] = None
        self._fields[ReportKeys.RUN_NAME] = self.run_name

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_open(self) -> None:
        if self._frozen:
            raise PipelineError("Run summary is frozen; no further updates allowed")

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._check_open()
            self._fields[key] = value

    def update(self, values: Dict[str, Any]) -> None:
        for key, value in values.items():
            self.set(key, value)

    def record(self, record: TaskRecord) -> None:
        """Accept one stage result message."""
        with self._lock:
            self._check_open()
            self._records.append(record)

    @property
    def fields(self) -> "OrderedDict[str, Any]":
        return OrderedDict(self._fields)

    @property
    def records(self) -> List[TaskRecord]:
        return list(self._records)

    def finalize(self, result: RunResult) -> None:
        """Add run status fields and freeze the summary."""
        with self._lock:
            if self._frozen:
                return
            self.result = result
            self._fields[ReportKeys.STATUS] = "success" if result.success else "failed"
            self._fields[ReportKeys.START_TIME] = datetime.fromtimestamp(result.start_time).strftime(
                "%Y-%m-%d %H:%M:%S"
            )
            if result.end_time is not None:
                self._fields[ReportKeys.END_TIME] = datetime.fromtimestamp(
                    result.end_time
                ).strftime("%Y-%m-%d %H:%M:%S")
            runtime = result.get_total_runtime()
            if runtime is not None:
                self._fields[ReportKeys.DURATION] = f"{runtime:.1f}s"
            self._frozen = True

    @property
    def success(self) -> bool:
        return self.result is not None and self.result.success

    def failures(self) -> List[TaskRecord]:
        return [r for r in self._records if r.status is TaskStatus.FAILED and not r.ignorable]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_name": self.run_name,
            "version": __version__,
            "success": self.success,
            "fields": {k: _plain(v) for k, v in self._fields.items()},
            "failures": [r.to_dict() for r in self.failures()],
            "stranded": [r.to_dict() for r in self.records if r.stranded and not r.ignorable],
            "tasks": [r.to_dict() for r in self._records],
        }


def _plain(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _display(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) or "-"
    return str(value)


class ReportRenderer:
    """Render a finalized :class:`RunSummary` under ``<outdir>/pipeline_info``."""

    def __init__(self, summary: RunSummary, output_dir: Path):
        self.summary = summary
        self.output_dir = Path(output_dir)
        self.logger = get_logger("summary")

    def task_table(self) -> pd.DataFrame:
        """One row per task instance."""
        columns = ["task", "sample", "status", "ignorable", "stranded", "start_time", "duration", "error_type", "error"]
        rows = [r.to_dict() for r in self.summary.records]
        if not rows:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame(rows)[columns]

    def task_overview(self) -> pd.DataFrame:
        """Instance counts per task and status with median runtime."""
        table = self.task_table()
        if table.empty:
            return pd.DataFrame(columns=["task", "succeeded", "failed", "cancelled", "median_duration"])
        counts = (
            table.groupby(["task", "status"], sort=False).size().unstack(fill_value=0)
        )
        for status in ("succeeded", "failed", "cancelled"):
            if status not in counts.columns:
                counts[status] = 0
        durations = table.dropna(subset=["duration"]).groupby("task", sort=False)["duration"]
        counts["median_duration"] = durations.agg(lambda d: float(np.median(d))).round(2)
        counts = counts.reset_index()[["task", "succeeded", "failed", "cancelled", "median_duration"]]
        return counts

    def generate_text_summary(self, output_path: Optional[Path] = None) -> str:
        """Generate the plain-text report, also used as the e-mail body."""
        if output_path is None:
            output_path = self.output_dir / "run_summary.txt"
        summary = self.summary

        lines = []
        lines.append("=" * 80)
        lines.append(f"smrnaflow Run Summary - {summary.run_name}")
        lines.append("=" * 80)
        lines.append("")

        lines.append("1. PARAMETERS")
        lines.append("-" * 13)
        width = max((len(k) for k in summary.fields), default=0)
        for key, value in summary.fields.items():
            lines.append(f"{key:<{width}} : {_display(value)}")
        lines.append("")

        lines.append("2. TASKS")
        lines.append("-" * 8)
        overview = self.task_overview()
        if overview.empty:
            lines.append("No tasks were run")
        else:
            lines.append(overview.to_string(index=False))
        lines.append("")

        failures = summary.failures()
        ignored = [r for r in summary.records if r.status is TaskStatus.FAILED and r.ignorable]
        cancelled = [r for r in summary.records if r.status is TaskStatus.CANCELLED]
        lines.append("3. PROBLEMS")
        lines.append("-" * 11)
        if not (failures or ignored or cancelled):
            lines.append("None")
        for r in failures:
            lines.append(f"FAILED     {r.label}: {r.error_message}")
        for r in ignored:
            lines.append(f"IGNORED    {r.label}: {r.error_message}")
        for r in cancelled:
            tag = "STRANDED" if r.stranded else "CANCELLED"
            lines.append(f"{tag:<11}{r.label}: {r.error_message}")
        lines.append("")

        lines.append(f"Generated by smrnaflow v{__version__}")
        lines.append(f"Date: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        lines.append("=" * 80)

        text_content = "\n".join(lines)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(text_content)

        self.logger.info(f"Text summary saved to {output_path}")
        return text_content

    def generate_html_report(self, output_path: Optional[Path] = None) -> str:
        """Generate HTML report."""
        if output_path is None:
            output_path = self.output_dir / "run_summary.html"
        summary = self.summary

        param_rows = "\n".join(
            f"<tr><th>{_escape(k)}</th><td>{_escape(_display(v))}</td></tr>"
            for k, v in summary.fields.items()
        )
        task_rows = "\n".join(
            f'<tr class="{r.status.value}"><td>{_escape(r.task)}</td>'
            f"<td>{_escape(r.key or '-')}</td><td>{r.status.value}</td>"
            f"<td>{'' if r.duration is None else f'{r.duration:.1f}'}</td>"
            f"<td>{_escape(r.error_message or '')}</td></tr>"
            for r in summary.records
        )
        template_data = {
            "run_name": _escape(summary.run_name),
            "status": "success" if summary.success else "failed",
            "analysis_date": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "version": __version__,
            "param_rows": param_rows,
            "task_rows": task_rows or '<tr><td colspan="5">No tasks were run</td></tr>',
        }

        html_content = _HTML_TEMPLATE
        for key, value in template_data.items():
            html_content = html_content.replace(f"{{{key}}}", str(value))

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(html_content)

        self.logger.info(f"HTML report saved to {output_path}")
        return html_content

    def write_json(self, output_path: Optional[Path] = None) -> Path:
        if output_path is None:
            output_path = self.output_dir / "run_summary.json"
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.summary.to_dict(), f, indent=2)
        return output_path

    def write_task_table(self, output_path: Optional[Path] = None) -> Path:
        if output_path is None:
            output_path = self.output_dir / "task_records.tsv"
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.task_table().to_csv(output_path, sep="\t", index=False)
        return output_path

    def render_all(self) -> Dict[str, Path]:
        """Write every report format; returns format -> path."""
        if not self.summary.frozen:
            raise PipelineError("Run summary must be finalized before rendering")
        paths = {
            "text": self.output_dir / "run_summary.txt",
            "html": self.output_dir / "run_summary.html",
        }
        self.generate_text_summary(paths["text"])
        self.generate_html_report(paths["html"])
        paths["json"] = self.write_json()
        paths["tsv"] = self.write_task_table()
        return paths


def _escape(text: str) -> str:
    return (
        str(text)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


_HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>smrnaflow Run Summary - {run_name}</title>
    <style>
        body {
            font-family: Arial, 'Helvetica Neue', sans-serif;
            background: #fafafa;
            color: #333;
            font-size: 14px;
            padding: 30px 20px;
        }
        .container {
            max-width: 1200px;
            margin: 0 auto;
            background: white;
            border: 1px solid #e0e0e0;
            padding: 20px 30px;
        }
        h1 { color: #2c3e50; font-size: 24px; }
        h2 { color: #2c3e50; font-size: 18px; border-bottom: 2px solid #dee2e6; }
        .status-success { color: #2e7d32; }
        .status-failed { color: #c62828; }
        table { border-collapse: collapse; width: 100%; margin-bottom: 20px; }
        th, td { border: 1px solid #e0e0e0; padding: 6px 10px; text-align: left; }
        th { background: #f8f9fa; }
        tr.failed td { background: #fdecea; }
        tr.cancelled td { background: #fff8e1; }
        .footer { color: #888; font-size: 12px; margin-top: 20px; }
    </style>
</head>
<body>
<div class="container">
    <h1>smrnaflow Run Summary - {run_name}</h1>
    <p>Status: <strong class="status-{status}">{status}</strong></p>

    <h2>Parameters</h2>
    <table>
{param_rows}
    </table>

    <h2>Tasks</h2>
    <table>
        <tr><th>Task</th><th>Sample</th><th>Status</th><th>Duration (s)</th><th>Error</th></tr>
{task_rows}
    </table>

    <div class="footer">Generated by smrnaflow v{version} on {analysis_date}</div>
</div>
</body>
</html>
"""


class Notifier:
    """Send the completion e-mail: SMTP first, the ``mail`` command second.

    Delivery problems are logged and never change the run status.
    """

    def __init__(
        self,
        recipient: str,
        sender: str = "smrnaflow@localhost",
        smtp_host: str = "localhost",
        smtp_port: int = 25,
        smtp_timeout: int = 30,
        mail_command: str = "mail",
    ):
        self.recipient = recipient
        self.sender = sender
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_timeout = smtp_timeout
        self.mail_command = mail_command
        self.logger = get_logger("notification")

    @classmethod
    def from_config(cls, notification) -> Optional["Notifier"]:
        """Return a Notifier, or None when no recipient is configured."""
        if not notification.email:
            return None
        return cls(
            recipient=notification.email,
            sender=notification.sender,
            smtp_host=notification.smtp_host,
            smtp_port=notification.smtp_port,
            smtp_timeout=notification.smtp_timeout,
            mail_command=notification.mail_command,
        )

    @staticmethod
    def subject(summary: RunSummary) -> str:
        status = "Successful" if summary.success else "FAILED"
        return f"[smrnaflow] {status}: {summary.run_name}"

    def build_message(self, summary: RunSummary, body: str, html: Optional[str] = None) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = self.subject(summary)
        msg["From"] = self.sender
        msg["To"] = self.recipient
        msg.set_content(body)
        if html:
            msg.add_alternative(html, subtype="html")
        return msg

    def _send_smtp(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.smtp_timeout) as smtp:
            smtp.send_message(message)
        self.logger.info(f"Sent summary e-mail to {self.recipient} via {self.smtp_host}")

    def _send_mail_command(self, summary: RunSummary, body: str) -> None:
        MailCommand(executable=self.mail_command).send(self.recipient, self.subject(summary), body)

    def deliver(self, summary: RunSummary, body: str, html: Optional[str] = None) -> str:
        """Send through the first working channel; returns its name.

        Raises:
            NotificationDeliveryFailure: both channels failed.
        """
        message = self.build_message(summary, body, html)
        try:
            self._send_smtp(message)
            return "smtp"
        except (smtplib.SMTPException, socket.error) as smtp_error:
            self.logger.warning(f"SMTP delivery failed ({smtp_error}); trying '{self.mail_command}'")
            try:
                self._send_mail_command(summary, body)
                return "mail"
            except ExternalToolError as mail_error:
                raise NotificationDeliveryFailure(
                    f"Could not send e-mail to {self.recipient}: "
                    f"smtp: {smtp_error}; mail: {mail_error}"
                ) from mail_error

    def notify(self, summary: RunSummary, body: str, html: Optional[str] = None) -> bool:
        """Deliver and log any failure; returns True when a channel succeeded."""
        try:
            self.deliver(summary, body, html)
        except NotificationDeliveryFailure as e:
            self.logger.error(str(e))
            return False
        return True
