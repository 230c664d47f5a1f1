"""Tests for run summary aggregation, report rendering and notification."""

import json
from pathlib import Path
import smtplib
import sys
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from smrnaflow.config import NotificationConfig
from smrnaflow.core.pipeline_types import ReportKeys, RunResult, TaskRecord, TaskStatus
from smrnaflow.core.summary import Notifier, ReportRenderer, RunSummary
from smrnaflow.exceptions import ExternalToolError, NotificationDeliveryFailure, PipelineError


def _record(task, key, status, ignorable=False, duration=1.0, error=None):
    record = TaskRecord(task=task, key=key, ignorable=ignorable)
    record.start()
    record.finish(status, error)
    record.duration = duration
    return record


@pytest.fixture
def failed_summary():
    records = [
        _record("trim_galore", "s1", TaskStatus.SUCCEEDED, duration=2.0),
        _record("trim_galore", "s2", TaskStatus.FAILED, error=RuntimeError("adapter not found")),
        _record("mirtrace", None, TaskStatus.FAILED, ignorable=True, error=RuntimeError("no species")),
    ]
    cancelled = TaskRecord(task="edger")
    cancelled.cancel("upstream of 'mirna_stats' failed")
    records.append(cancelled)

    summary = RunSummary("test_run")
    summary.set(ReportKeys.SAMPLES, ["s1", "s2"])
    for record in records:
        summary.record(record)
    result = RunResult(records=records, start_time=1_700_000_000.0, end_time=1_700_000_042.0)
    summary.finalize(result)
    return summary


class TestRunSummary:
    def test_fields_keep_insertion_order(self):
        summary = RunSummary("run1")
        summary.set(ReportKeys.READS, ["a.fq"])
        summary.update({ReportKeys.MATURE: "mature.fa", ReportKeys.HAIRPIN: "hairpin.fa"})
        assert list(summary.fields) == [
            ReportKeys.RUN_NAME,
            ReportKeys.READS,
            ReportKeys.MATURE,
            ReportKeys.HAIRPIN,
        ]

    def test_default_run_name(self):
        assert RunSummary().run_name.startswith("smrnaflow_")

    def test_frozen_after_finalize(self):
        summary = RunSummary("run1")
        summary.finalize(RunResult(end_time=None))
        assert summary.frozen
        with pytest.raises(PipelineError):
            summary.set("late", 1)
        with pytest.raises(PipelineError):
            summary.record(TaskRecord(task="late"))

    def test_finalize_adds_status_fields(self, failed_summary):
        fields = failed_summary.fields
        assert fields[ReportKeys.STATUS] == "failed"
        assert fields[ReportKeys.DURATION] == "42.0s"
        assert not failed_summary.success
        assert [r.label for r in failed_summary.failures()] == ["trim_galore[s2]"]

    def test_to_dict(self, failed_summary):
        data = failed_summary.to_dict()
        assert data["run_name"] == "test_run"
        assert data["success"] is False
        assert len(data["tasks"]) == 4
        assert data["failures"][0]["error_type"] == "RuntimeError"


class TestReportRenderer:
    def test_render_requires_frozen_summary(self, tmp_path):
        with pytest.raises(PipelineError):
            ReportRenderer(RunSummary("open"), tmp_path).render_all()

    def test_render_all_writes_every_format(self, failed_summary, tmp_path):
        paths = ReportRenderer(failed_summary, tmp_path / "pipeline_info").render_all()
        assert set(paths) == {"text", "html", "json", "tsv"}
        for path in paths.values():
            assert path.exists()

        text = paths["text"].read_text()
        assert "smrnaflow Run Summary - test_run" in text
        assert "FAILED     trim_galore[s2]: " in text
        assert "IGNORED    mirtrace: " in text
        assert "CANCELLED  edger: upstream of 'mirna_stats' failed" in text

        html = paths["html"].read_text()
        assert "test_run" in html
        assert "{param_rows}" not in html

        data = json.loads(paths["json"].read_text())
        assert data["fields"][ReportKeys.SAMPLES] == ["s1", "s2"]

        table = pd.read_csv(paths["tsv"], sep="\t")
        assert list(table["status"]) == ["succeeded", "failed", "failed", "cancelled"]

    def test_stranded_cancellation_is_reported(self, tmp_path):
        stranded = TaskRecord(task="bowtie_mature", key="s1")
        stranded.cancel("broadcast stream 'mature_index' closed empty", stranded=True)
        summary = RunSummary("stranded_run")
        summary.record(stranded)
        summary.finalize(RunResult(records=[stranded], end_time=None))

        paths = ReportRenderer(summary, tmp_path).render_all()
        text = paths["text"].read_text()
        assert "STRANDED   bowtie_mature[s1]: broadcast stream 'mature_index' closed empty" in text
        assert summary.fields[ReportKeys.STATUS] == "failed"
        data = json.loads(paths["json"].read_text())
        assert data["success"] is False
        assert [r["task"] for r in data["stranded"]] == ["bowtie_mature"]

    def test_task_overview(self, failed_summary, tmp_path):
        overview = ReportRenderer(failed_summary, tmp_path).task_overview().set_index("task")
        assert overview.loc["trim_galore", "succeeded"] == 1
        assert overview.loc["trim_galore", "failed"] == 1
        assert overview.loc["edger", "cancelled"] == 1
        assert overview.loc["trim_galore", "median_duration"] == pytest.approx(1.5)

    def test_empty_summary(self, tmp_path):
        summary = RunSummary("empty")
        summary.finalize(RunResult(end_time=None))
        renderer = ReportRenderer(summary, tmp_path)
        assert renderer.task_table().empty
        assert "No tasks were run" in renderer.generate_text_summary()

    def test_html_is_escaped(self, tmp_path):
        summary = RunSummary("<script>")
        summary.finalize(RunResult())
        html = ReportRenderer(summary, tmp_path).generate_html_report()
        assert "<script>" not in html
        assert "&lt;script&gt;" in html


class TestNotifier:
    def test_no_recipient_means_no_notifier(self):
        assert Notifier.from_config(NotificationConfig()) is None
        notifier = Notifier.from_config(NotificationConfig(email="lab@example.org", smtp_port=2525))
        assert notifier.recipient == "lab@example.org"
        assert notifier.smtp_port == 2525

    def test_subject_reflects_status(self, failed_summary):
        assert Notifier.subject(failed_summary) == "[smrnaflow] FAILED: test_run"

    def test_build_message(self, failed_summary):
        msg = Notifier("lab@example.org").build_message(failed_summary, "body", html="<p>hi</p>")
        assert msg["To"] == "lab@example.org"
        assert msg.is_multipart()

    @patch("smrnaflow.core.summary.smtplib.SMTP")
    def test_smtp_delivery(self, mock_smtp, failed_summary):
        notifier = Notifier("lab@example.org", smtp_host="mail.example.org")
        assert notifier.deliver(failed_summary, "body") == "smtp"
        mock_smtp.assert_called_once_with("mail.example.org", 25, timeout=30)
        mock_smtp.return_value.__enter__.return_value.send_message.assert_called_once()

    @patch("smrnaflow.core.summary.smtplib.SMTP", side_effect=ConnectionRefusedError("refused"))
    def test_falls_back_to_mail_command(self, mock_smtp, failed_summary):
        notifier = Notifier("lab@example.org")
        with patch.object(Notifier, "_send_mail_command") as mock_mail:
            assert notifier.deliver(failed_summary, "body") == "mail"
        mock_mail.assert_called_once_with(failed_summary, "body")

    @patch("smrnaflow.core.summary.smtplib.SMTP")
    def test_both_channels_fail(self, mock_smtp, failed_summary):
        mock_smtp.return_value.__enter__.return_value.send_message.side_effect = (
            smtplib.SMTPRecipientsRefused({})
        )
        notifier = Notifier("lab@example.org")
        with patch.object(
            Notifier, "_send_mail_command", side_effect=ExternalToolError("mail not found in PATH")
        ):
            with pytest.raises(NotificationDeliveryFailure):
                notifier.deliver(failed_summary, "body")
            assert notifier.notify(failed_summary, "body") is False

    def test_mail_command_is_used_with_configured_executable(self, failed_summary):
        notifier = Notifier("lab@example.org", mail_command="mailx")
        with patch("smrnaflow.core.summary.MailCommand") as mock_cls:
            notifier._send_mail_command(failed_summary, "body")
        mock_cls.assert_called_once_with(executable="mailx")
        mock_cls.return_value.send.assert_called_once_with(
            "lab@example.org", "[smrnaflow] FAILED: test_run", "body"
        )
