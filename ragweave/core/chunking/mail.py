"""
Email chunk method: a header chunk followed by the naive-merged body.
"""

from email import message_from_string
from email.policy import default as default_policy

from ragweave.core.chunking.base import ChunkingContext, drafts_from_merged
from ragweave.core.chunking.parser import html_to_text
from ragweave.models.document import ChunkDraft, ParsedDocument
from ragweave.models.parser_config import ParserConfig

HEADER_FIELDS = ("From", "To", "Cc", "Subject", "Date")


def _body_text(message) -> str:
    if not message.is_multipart():
        payload = message.get_content() if message.get_content_maintype() == "text" else ""
        if message.get_content_subtype() == "html":
            payload = html_to_text(payload)
        return payload

    part = message.get_body(preferencelist=("plain", "html"))
    if part is None:
        return ""
    content = part.get_content()
    return html_to_text(content) if part.get_content_subtype() == "html" else content


def chunk_email(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """
    Split an RFC 822 message.

    Text without any recognised header is treated as a bare body.
    """
    raw = document.text
    if not raw.strip():
        return []

    message = message_from_string(raw, policy=default_policy)
    headers = {name: str(message[name]) for name in HEADER_FIELDS if message[name]}

    drafts = []
    if headers:
        drafts.append(
            ChunkDraft(
                text="\n".join(f"{name}: {value}" for name, value in headers.items()),
                positions=[1],
                section="header",
                metadata={"part": "header", **{k.lower(): v for k, v in headers.items()}},
            )
        )
        body = _body_text(message)
    else:
        body = raw

    subject = headers.get("Subject")
    drafts.extend(drafts_from_merged(ctx.merge_text([body]), section=subject, part="body"))
    return drafts
