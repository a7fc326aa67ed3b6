"""
Snapshot tag naming, ordering and interactive selection

Tags look like ``snapshot-2024-02-01_13-45-00``. The timestamp suffix is
zero-padded and fixed-width, so ordering by it is chronological. Legacy
producers wrote compact suffixes (``db-20240115-143022``) which are
recognised too.
"""

import re
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from concrete_sync.exceptions import OperationCancelled

LATEST = "latest"

TAG_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_TIMESTAMP_PATTERNS = (
    re.compile(r"(\d{4})-(\d{2})-(\d{2})_(\d{2})-(\d{2})-(\d{2})$"),
    re.compile(r"(\d{4})(\d{2})(\d{2})[-_](\d{2})(\d{2})(\d{2})$"),
)


def snapshot_tag_name(tag_type: str = "snapshot", now: Optional[float] = None) -> str:
    """
    Builds a tag name for a snapshot created now

    Args:
        tag_type: Tag prefix ("snapshot")
        now: Epoch seconds, defaults to the current time

    Returns:
        str: Tag name like snapshot-2024-02-01_13-45-00
    """
    stamp = time.strftime(TAG_TIMESTAMP_FORMAT, time.localtime(now))
    return f"{tag_type}-{stamp}"


def tag_sort_key(tag: str) -> Optional[str]:
    """
    Extracts the normalised timestamp (YYYYMMDDHHMMSS) embedded in a tag

    Returns:
        Optional[str]: Sortable timestamp or None if the tag carries none
    """
    for pattern in _TIMESTAMP_PATTERNS:
        match = pattern.search(tag)
        if match:
            return "".join(match.groups())
    return None


def sort_tags(tags: Sequence[str]) -> List[str]:
    """
    Sorts tags newest-first by their embedded timestamp

    Tags without a timestamp come last, in reverse name order.
    """
    unique = sorted(set(tag for tag in tags if tag))
    stamped = [tag for tag in unique if tag_sort_key(tag) is not None]
    unstamped = [tag for tag in unique if tag_sort_key(tag) is None]

    stamped.sort(key=lambda tag: (tag_sort_key(tag), tag), reverse=True)
    unstamped.sort(reverse=True)
    return stamped + unstamped


@dataclass(frozen=True)
class Selection:
    """
    Outcome of one answer given to the selector

    Exactly one of chosen / next_page / error is meaningful.
    """

    chosen: Optional[str] = None
    next_page: Optional[int] = None
    error: Optional[str] = None


class TagSelector:
    """
    Turns a newest-first tag list into one chosen ref

    resolve() holds the decision logic and never performs I/O; choose()
    drives it with injectable ask/echo callables.
    """

    def __init__(self, tags: Sequence[str], page_size: int = 10):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.tags = list(tags)
        self.page_size = page_size

    @property
    def page_count(self) -> int:
        return max(1, (len(self.tags) + self.page_size - 1) // self.page_size)

    def page_entries(self, page: int) -> List[tuple]:
        """
        Returns (number, tag) pairs shown on a page, numbers being global
        """
        start = page * self.page_size
        chunk = self.tags[start:start + self.page_size]
        return [(start + offset + 1, tag) for offset, tag in enumerate(chunk)]

    def resolve(self, answer: str, page: int) -> Selection:
        """
        Interprets one answer

        Args:
            answer: Raw text typed by the operator
            page: Page currently displayed (0-based)

        Returns:
            Selection: The chosen ref, the next page to show, or an error
        """
        answer = (answer or "").strip()

        if answer == "0" or answer.lower() == LATEST:
            return Selection(chosen=LATEST)

        if answer == "":
            return Selection(next_page=(page + 1) % self.page_count)

        try:
            number = int(answer)
        except ValueError:
            number = None

        if number is not None and 1 <= number <= len(self.tags):
            return Selection(chosen=self.tags[number - 1])

        return Selection(error=f"Invalid selection. Enter 0 for latest or a number from 1 to {len(self.tags)}.")

    def render_page(self, page: int) -> List[str]:
        lines = ["", "Available snapshots:", f"  0) {LATEST} (most recent from branch)"]
        for number, tag in self.page_entries(page):
            lines.append(f"  {number}) {tag}")
        if self.page_count > 1:
            lines.append(f"  (page {page + 1}/{self.page_count}, press Enter for more)")
        lines.append("")
        return lines

    def choose(self, ask: Callable[[str], str] = input, echo: Callable[[str], None] = print,
               confirm_latest: Optional[Callable[[], bool]] = None) -> str:
        """
        Prompts until a ref is chosen

        Args:
            ask: Prompt function returning the typed answer
            echo: Output function
            confirm_latest: Called when there are no tags; False cancels

        Returns:
            str: A tag name or the latest sentinel

        Raises:
            OperationCancelled: If there are no tags and the operator cancels
        """
        if not self.tags:
            echo("")
            echo("ℹ️ No snapshot tags found in repository.")
            echo("   Either nothing has been pushed yet (run 'push' first to create tags)")
            echo("   or the tags could not be fetched (check repository access).")
            echo("   The latest snapshot from the branch will be used instead.")
            if confirm_latest is None:
                ask("Press Enter to continue with latest, or Ctrl+C to cancel...")
            elif not confirm_latest():
                raise OperationCancelled("No snapshot selected")
            return LATEST

        page = 0
        for line in self.render_page(page):
            echo(line)

        while True:
            selection = self.resolve(ask("Select snapshot to use (0 for latest, or number): "), page)
            if selection.chosen is not None:
                return selection.chosen
            if selection.error:
                echo(f"❌ {selection.error}")
                continue
            page = selection.next_page
            for line in self.render_page(page):
                echo(line)


def choose_tag(tags: Sequence[str], page_size: int = 10, ask: Callable[[str], str] = input,
               echo: Callable[[str], None] = print,
               confirm_latest: Optional[Callable[[], bool]] = None) -> str:
    """
    Presents the tags page by page and returns the chosen ref
    """
    return TagSelector(tags, page_size=page_size).choose(ask=ask, echo=echo, confirm_latest=confirm_latest)
