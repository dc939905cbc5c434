"""
MIME rendering for escalation jobs.

Attachments are read here, at send time, so a file that disappeared after
startup is reported as an AttachmentError on the job rather than crashing
the engine.
"""

import mimetypes
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from pathlib import Path

from deadman.errors import AttachmentError
from deadman.timer import EmailJob


def _read_attachment(path_str: str) -> tuple[str, bytes, str, str]:
    """Return (filename, data, maintype, subtype)."""
    path = Path(path_str).expanduser()
    if not path.is_file():
        raise AttachmentError(path_str, "not found")
    try:
        data = path.read_bytes()
    except OSError as e:
        raise AttachmentError(path_str, f"unreadable ({e})") from e

    content_type, _ = mimetypes.guess_type(path.name)
    if content_type is None:
        content_type = "application/octet-stream"
    maintype, subtype = content_type.split("/", 1)
    return path.name, data, maintype, subtype


def render_message(job: EmailJob) -> EmailMessage:
    """
    Build the email for a job.

    Args:
        job: EmailJob with rendered text and attachment paths

    Returns:
        EmailMessage ready for the transport

    Raises:
        AttachmentError: if any attachment is missing or unreadable
    """
    msg = EmailMessage()
    msg["From"] = job.sender
    msg["To"] = ", ".join(job.recipients)
    msg["Subject"] = job.subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain=job.sender.rpartition("@")[2] or None)
    msg.set_content(job.body)

    for path_str in job.attachments:
        filename, data, maintype, subtype = _read_attachment(path_str)
        msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=filename)

    return msg
