"""Text and AI-assisted data extraction executors."""

import json
import re
from typing import Any, Dict, List

from bs4 import BeautifulSoup, Comment

from ..core.environment import ExecutionEnvironment
from ..core.exceptions import CredentialError, UpstreamServiceError

REMOVED_TAGS = ["script", "style", "noscript", "iframe", "svg", "link", "meta", "head"]
REMOVED_ATTRIBUTES = ("style", "width", "height")
REMOVED_ATTRIBUTE_PREFIXES = ("data-", "aria-", "on")

EXTRACTION_SYSTEM_PROMPT = (
    "You are a webscraper helper that extracts data from HTML or text. You will be given a "
    "piece of text or HTML content as input and also the prompt with the data you have to "
    "extract. The response should always be only the extracted data as a JSON array or "
    "object, without any additional words or explanations. Analyze the input carefully and "
    "extract data precisely based on the prompt. If no data is found, return an empty JSON "
    "array. Work only with the provided content and ensure the output is always a valid JSON "
    "array without any surrounding text"
)

_WHITESPACE_RE = re.compile(r"\s+")


def extract_text_from_element(env: ExecutionEnvironment) -> bool:
    html = env.get_input("Html")
    if not html:
        env.log.error("input -> Html is not defined")
        return False
    selector = env.get_input("Selector")
    if not selector:
        env.log.error("input -> Selector is not defined")
        return False

    soup = BeautifulSoup(html, "html.parser")
    elements = soup.select(selector)
    if not elements:
        env.log.error("Element not found")
        return False

    text = "\n".join(element.get_text(" ", strip=True) for element in elements).strip()
    if not text:
        env.log.error("Element has no text")
        return False

    env.set_output("Extracted text", text)
    return True


def unwrap_content(content: str, env: ExecutionEnvironment) -> str:
    """Pull HTML out of the JSON envelopes page capture produces; anything else is returned as is."""
    stripped = content.strip()
    if not stripped.startswith(("{", "[")):
        return content
    try:
        envelope = json.loads(stripped)
    except ValueError:
        return content
    if not isinstance(envelope, dict):
        return content

    if envelope.get("combinedHTML"):
        env.log.info("Detected JSON input, extracting 'combinedHTML'")
        return str(envelope["combinedHTML"])
    if envelope.get("html"):
        env.log.info("Detected JSON input, extracting 'html'")
        return str(envelope["html"])
    pages = envelope.get("pages")
    if isinstance(pages, list):
        env.log.info(f"Detected JSON input, combining HTML from {len(pages)} pages")
        return "\n\n".join(
            str(page.get("html") or "") if isinstance(page, dict) else "" for page in pages
        )
    return content


def _is_removed_attribute(name: str) -> bool:
    return name in REMOVED_ATTRIBUTES or name.startswith(REMOVED_ATTRIBUTE_PREFIXES)


def clean_html(html: str) -> str:
    """Drop non-content markup and heavy attributes, then collapse whitespace."""
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(REMOVED_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    for tag in soup.find_all(True):
        tag.attrs = {name: value for name, value in tag.attrs.items() if not _is_removed_attribute(name)}

    root = soup.body if soup.body is not None else soup
    cleaned = root.decode_contents()
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def build_extraction_messages(content: str, prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
        {"role": "user", "content": content},
        {"role": "user", "content": prompt},
    ]


def extract_data_with_ai(env: ExecutionEnvironment) -> bool:
    credential_id = env.get_input("Credentials")
    if not credential_id:
        env.log.error("input -> credentials is not defined")
        return False
    content = env.get_input("Content")
    if not content:
        env.log.error("input -> content is not defined")
        return False
    prompt = env.get_input("Prompt")
    if not prompt:
        env.log.error("input -> prompt is not defined")
        return False

    services = env.services
    if services.credentials is None or services.model_client is None:
        env.log.error("AI extraction is not configured")
        return False

    cleaned = clean_html(unwrap_content(str(content), env))
    limit = services.max_extraction_chars
    if len(cleaned) > limit:
        env.log.info(f"Content too large ({len(cleaned)} chars), truncating to {limit} chars to fit token limit")
        cleaned = cleaned[:limit]

    try:
        api_key = services.credentials.get_secret(str(credential_id))
    except CredentialError as e:
        env.log.error(e.message)
        return False

    try:
        completion = services.model_client.complete(
            api_key,
            build_extraction_messages(cleaned, str(prompt)),
            model=services.extraction_model,
        )
    except UpstreamServiceError as e:
        env.log.error(e.message)
        return False

    env.log.info(f"Prompt tokens used: {json.dumps(completion.prompt_tokens)}")
    env.log.info(f"Completion tokens used: {json.dumps(completion.completion_tokens)}")

    if not completion.content:
        env.log.error("Empty response from AI")
        return False

    env.set_output("Extracted Data", completion.content)
    return True
