"""Grounded question answering over a project's store."""

import json
import logging
import re
import time
from typing import Any, Callable, Optional

from .exceptions import FileSearchAPIError, FileSearchRateLimitError
from .models import QueryResult
from .sync.directory import RemoteStoreDirectory
from .sync.protocols import GenerationProtocol

logger = logging.getLogger(__name__)

FORCE_ANSWER_INSTRUCTION = (
    "DO NOT ASK THE USER TO READ THE MANUAL, pinpoint the relevant sections "
    "in the response itself."
)

FALLBACK_QUESTIONS = [
    "What is this document about?",
    "Summarize the key points.",
    "What are the important details?",
    "Can you explain the main concepts?",
]

EXAMPLE_QUESTIONS_PROMPT = (
    "You are provided some documents. Figure out what each document is "
    "about, based on its first pages. DO NOT GUESS OR HALLUCINATE THE TOPIC. "
    "Then, for each topic, generate 4 short and practical example questions "
    "a user might ask about it in English. Return the questions as a JSON "
    "array of objects. Each object should have a 'topic' key with the topic "
    "as a string, and a 'questions' key with an array of 4 question strings."
)

_JSON_BLOCK = re.compile(r"```json\s*\n(.*?)\n\s*```", re.DOTALL)


def no_store_message(project_name: str) -> str:
    return (
        f"No document store found for project '{project_name}'. "
        "Run 'pyfilesearch sync' in the project first."
    )


def ask_project(
    client: GenerationProtocol,
    directory: RemoteStoreDirectory,
    project_name: str,
    query: str,
    force_answer: bool = True,
    model: Optional[str] = None,
) -> QueryResult:
    """Answer a question from the documents of one project.

    Args:
        client: Generation service
        directory: Resolves the project's store
        project_name: Project (store display name)
        query: Question text
        force_answer: Ask the model to quote the relevant sections directly
            instead of pointing the user at the documents
        model: Model id override

    Returns:
        QueryResult; if the project has no store the text says so and no
        request is made

    Examples:
        >>> result = ask_project(client, RemoteStoreDirectory(client), "handbook",
        ...                      "How do I request leave?")
        >>> print(result.text)
    """
    store = directory.find_store(project_name)
    if store is None:
        logger.info(f"No store for project {project_name}")
        return QueryResult(text=no_store_message(project_name))

    prompt = query
    if force_answer:
        prompt = f"{query.rstrip()} {FORCE_ANSWER_INSTRUCTION}"

    logger.debug(f"Querying store {store.name} ({len(prompt)} chars)")
    return client.generate_content(prompt, [store.name], model=model)


def parse_example_questions(text: str) -> Optional[list[str]]:
    """Extract questions from a model reply.

    Accepts either a list of ``{"questions": [...]}`` objects or a plain
    list of strings, optionally inside a fenced json block.

    Returns:
        The questions, an empty list for an empty array, or None if the
        reply could not be parsed
    """
    json_text = text.strip()
    match = _JSON_BLOCK.search(json_text)
    if match:
        json_text = match.group(1)
    else:
        first = json_text.find("[")
        last = json_text.rfind("]")
        if first != -1 and last > first:
            json_text = json_text[first : last + 1]

    try:
        data: Any = json.loads(json_text)
    except json.JSONDecodeError:
        return None

    if not isinstance(data, list):
        return None
    if not data:
        return []

    first_item = data[0]
    if isinstance(first_item, dict) and isinstance(first_item.get("questions"), list):
        return [
            q
            for item in data
            if isinstance(item, dict)
            for q in item.get("questions") or []
            if isinstance(q, str)
        ]
    if isinstance(first_item, str):
        return [q for q in data if isinstance(q, str)]
    return None


def generate_example_questions(
    client: GenerationProtocol,
    store_name: str,
    max_attempts: int = 3,
    sleep: Callable[[float], None] = time.sleep,
) -> list[str]:
    """Ask the model for example questions about a store's documents.

    Unparseable replies and service errors are retried; after the last
    attempt the generic fallback questions are returned.

    Args:
        client: Generation service
        store_name: Store to ground on
        max_attempts: Number of generation attempts
        sleep: Blocking sleep function

    Returns:
        List of question strings (never empty)
    """
    for attempt in range(1, max_attempts + 1):
        try:
            result = client.generate_content(EXAMPLE_QUESTIONS_PROMPT, [store_name])
            questions = parse_example_questions(result.text)
            if questions is not None:
                return questions or list(FALLBACK_QUESTIONS)
            logger.warning(
                f"Unparseable example questions (attempt {attempt}/{max_attempts})"
            )
            delay = 1.0
        except FileSearchAPIError as e:
            logger.warning(
                f"Error generating examples (attempt {attempt}/{max_attempts}): {e}"
            )
            delay = 2.0**attempt if isinstance(e, FileSearchRateLimitError) else 1.0

        if attempt < max_attempts:
            sleep(delay)

    logger.warning("Failed to generate example questions, using fallbacks")
    return list(FALLBACK_QUESTIONS)
