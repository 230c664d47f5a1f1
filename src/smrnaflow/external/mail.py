"""``mail`` command used as the fallback notification channel."""

from __future__ import annotations

from smrnaflow.external.base import ExternalTool


class MailCommand(ExternalTool):
    """Send a plain-text message with the system ``mail`` executable."""

    tool_name = "mail"
    version_command = None
    install_hint = "install mailutils (or bsd-mailx) with your system package manager"

    def send(self, recipient: str, subject: str, body: str) -> None:
        self.run([self.executable, "-s", subject, recipient], input_text=body)
        self.logger.info(f"Sent summary e-mail to {recipient} with mail")
