# src/archivemind/application/services/classifiers.py
"""
Stateless resource classifiers.

Each classifier is a pure function `PlatformMessage -> list[DetectedResource]`. Patterns
are compiled once at import and only used through `search`/`finditer`/`findall`, which
keep no match position between calls, so the pipeline is safe to run from concurrent
tasks. `CLASSIFIER_PIPELINE` fixes the order: attachments, links, code blocks, pins.
"""

import hashlib
import re
from typing import Callable, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from archivemind.domain.entities import (
    DetectedResource,
    PlatformMessage,
    ResourceType,
)

# --- Patterns ---

URL_RE = re.compile(r"https?://[\w\-.]+\.[a-zA-Z]{2,}(?::\d+)?(?:/[\w\-./?&=#%~+:@!$,;]*)?", re.IGNORECASE)

# Valuable link families. Video is kept by the link classifier but does not by itself
# make a live message worth rescuing.
SOURCE_HOSTING_RE = re.compile(r"^https?://(?:www\.)?(?:github\.com|gitlab\.com|bitbucket\.org|codeberg\.org)/[\w\-.]+/[\w\-.]+", re.IGNORECASE)
DOCS_RE = re.compile(r"^https?://(?:[\w\-]+\.)*(?:docs|documentation|wiki|developer|developers)\.[\w\-.]+\.[a-z]{2,}|^https?://[\w\-.]*readthedocs\.(?:io|org)|^https?://(?:[\w\-]+\.)?wikipedia\.org/", re.IGNORECASE)
TUTORIAL_RE = re.compile(r"^https?://(?:www\.)?(?:tutorial|tutorials|learn|course|courses|guide|guides)[\w\-]*\.[\w\-.]+", re.IGNORECASE)
QA_RE = re.compile(r"^https?://(?:[\w\-]+\.)?(?:stackoverflow\.com|stackexchange\.com|serverfault\.com|superuser\.com|askubuntu\.com)/\S*\d+", re.IGNORECASE)
VIDEO_RE = re.compile(r"^https?://(?:www\.|m\.)?(?:youtube\.com/watch\?v=|youtu\.be/)[\w\-]+", re.IGNORECASE)

LIVE_VALUABLE_LINK_PATTERNS = (SOURCE_HOSTING_RE, DOCS_RE, TUTORIAL_RE, QA_RE)
RESCUE_LINK_PATTERNS = LIVE_VALUABLE_LINK_PATTERNS + (VIDEO_RE,)

SPAM_RE = re.compile(
    r"discord\.gg/|discord(?:app)?\.com/invite|\b(?:invite|join|nitro|free|click here|amazing deal)\b",
    re.IGNORECASE,
)

# ```lang\n ... ``` ; the language tag is only recognised when followed by a newline.
CODE_BLOCK_RE = re.compile(r"```(?:([\w+#.\-]+)?[ \t]*\n)?([\s\S]*?)```")

MIN_CODE_LINES = 5
MIN_CODE_CHARS = 100
LONG_FORM_CHARS = 200
MIN_CONTENT_CHARS = 10

# --- Attachment allow-list ---

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "svg"})
DOCUMENT_EXTENSIONS = frozenset({"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "odt", "ods", "odp"})
FILE_EXTENSIONS = frozenset({
    # archives
    "zip", "rar", "7z", "tar", "gz", "tgz", "tar.gz",
    # data
    "json", "xml", "csv", "sql", "yaml", "yml",
    # code
    "py", "js", "ts", "java", "cpp", "c", "h", "cs", "go", "rs", "rb", "php", "html", "css", "sh",
    # text
    "md", "txt",
    # media
    "mp3", "mp4", "wav", "webm", "mov",
})
ALLOWED_EXTENSIONS = IMAGE_EXTENSIONS | DOCUMENT_EXTENSIONS | FILE_EXTENSIONS


def file_extension(file_name: Optional[str]) -> Optional[str]:
    """Lower-cased extension, recognising the double `tar.gz` suffix."""
    if not file_name or "." not in file_name:
        return None
    lowered = file_name.lower()
    if lowered.endswith(".tar.gz"):
        return "tar.gz"
    return lowered.rsplit(".", 1)[-1] or None


def attachment_type(file_name: Optional[str]) -> Optional[ResourceType]:
    """Maps a file name to FILE/IMAGE/DOCUMENT, or None when not on the allow-list."""
    ext = file_extension(file_name)
    if ext is None or ext not in ALLOWED_EXTENSIONS:
        return None
    if ext in IMAGE_EXTENSIONS:
        return ResourceType.IMAGE
    if ext in DOCUMENT_EXTENSIONS:
        return ResourceType.DOCUMENT
    return ResourceType.FILE


def is_spam(text: str) -> bool:
    return bool(SPAM_RE.search(text or ""))


def is_valuable_link(url: str, patterns=RESCUE_LINK_PATTERNS) -> bool:
    return any(p.search(url) for p in patterns)


def extract_urls(content: str) -> List[str]:
    # Trailing punctuation is almost always sentence text, not part of the URL.
    return [u.rstrip(".,;:!?)") for u in URL_RE.findall(content or "")]


def extract_code_blocks(content: str) -> List[Tuple[str, str]]:
    """(language, code) for every fenced block; language defaults to "unknown"."""
    blocks = []
    for match in CODE_BLOCK_RE.finditer(content or ""):
        language = (match.group(1) or "unknown").lower()
        blocks.append((language, match.group(2)))
    return blocks


def is_significant_code(code: str) -> bool:
    body = code.strip("\n")
    return len(body.split("\n")) >= MIN_CODE_LINES or len(body) > MIN_CODE_CHARS


def has_valuable_content(content: Optional[str], has_attachments: bool = False) -> bool:
    """
    Fast gate for live messages: is this message worth running the rescue pipeline on?
    """
    content = content or ""
    if len(content) < MIN_CONTENT_CHARS:
        return has_attachments

    if CODE_BLOCK_RE.search(content):
        return True

    if any(is_valuable_link(url, LIVE_VALUABLE_LINK_PATTERNS) for url in extract_urls(content)):
        return True

    if has_attachments:
        return True

    return len(content) > LONG_FORM_CHARS and not is_spam(content)


# --- Classifiers ---

def _base_kwargs(message: PlatformMessage) -> dict:
    return {
        "author_id": message.author_id,
        "author_name": message.author_name,
        "message_id": message.id,
    }


def classify_attachments(message: PlatformMessage) -> List[DetectedResource]:
    resources = []
    for attachment in message.attachments:
        rtype = attachment_type(attachment.file_name)
        if rtype is None:
            continue
        resources.append(DetectedResource(
            type=rtype,
            url=attachment.url,
            file_name=attachment.file_name or "unknown",
            file_size=attachment.size,
            **_base_kwargs(message),
        ))
    return resources


def classify_links(message: PlatformMessage) -> List[DetectedResource]:
    resources = []
    for url in extract_urls(message.content):
        if is_spam(url):
            continue
        if is_valuable_link(url):
            resources.append(DetectedResource(type=ResourceType.LINK, url=url, **_base_kwargs(message)))
    return resources


def classify_code_blocks(message: PlatformMessage) -> List[DetectedResource]:
    resources = []
    for language, code in extract_code_blocks(message.content):
        if not is_significant_code(code):
            continue
        resources.append(DetectedResource(
            type=ResourceType.CODE,
            content=code.strip(),
            language=language,
            **_base_kwargs(message),
        ))
    return resources


def classify_pin(message: PlatformMessage) -> List[DetectedResource]:
    if not message.pinned:
        return []
    return [DetectedResource(type=ResourceType.PIN, content=message.content, **_base_kwargs(message))]


Classifier = Callable[[PlatformMessage], List[DetectedResource]]

CLASSIFIER_PIPELINE: Tuple[Classifier, ...] = (
    classify_attachments,
    classify_links,
    classify_code_blocks,
    classify_pin,
)


def classify_message(message: PlatformMessage) -> List[DetectedResource]:
    resources: List[DetectedResource] = []
    for classifier in CLASSIFIER_PIPELINE:
        resources.extend(classifier(message))
    return resources


def deduplicate(resources: Iterable[DetectedResource]) -> List[DetectedResource]:
    """Keeps the first resource per (type, url-or-content), preserving order."""
    seen = set()
    unique = []
    for resource in resources:
        key = resource.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(resource)
    return unique


# --- Persistence helpers ---

def url_domain(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def build_tags(resource: DetectedResource) -> List[str]:
    tags = {resource.type.value.lower()}
    if resource.type is ResourceType.CODE:
        tags.add(resource.language or "unknown")
    elif resource.type is ResourceType.LINK:
        domain = url_domain(resource.url)
        if domain:
            tags.add(domain)
    elif resource.type in (ResourceType.FILE, ResourceType.IMAGE, ResourceType.DOCUMENT):
        ext = file_extension(resource.file_name)
        if ext:
            tags.add(ext)
    elif resource.type is ResourceType.PIN:
        pass
    else:
        raise ValueError(f"Unhandled resource type: {resource.type}")
    return sorted(tags)


def fingerprint(resource: DetectedResource) -> str:
    """Durable dedup key: sha256 of type and url-or-content."""
    raw = f"{resource.type.value}:{resource.dedup_value}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def format_context(messages: Iterable[PlatformMessage], limit: int = 500) -> str:
    """`author: content` lines, oldest first, truncated to `limit` characters."""
    ordered = sorted(messages, key=_message_sort_key)
    text = "\n".join(f"{m.author_name}: {m.content}" for m in ordered)
    return text[:limit]


def _message_sort_key(message: PlatformMessage):
    # Snowflakes grow monotonically; fall back to created_at for non-numeric ids.
    if message.id.isdigit():
        return (0, int(message.id), "")
    return (1, 0, message.created_at.isoformat() if message.created_at else message.id)
