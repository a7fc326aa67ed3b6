"""
Interactive prompts

Prompt functions take the input callable as a parameter so that commands
can be driven by canned answers.
"""

from typing import Callable

AFFIRMATIVE = ("y", "yes")


def confirm(message: str, ask: Callable[[str], str] = input) -> bool:
    """
    Asks a yes/no question; anything but y/yes means no

    Args:
        message: Question to display
        ask: Input function

    Returns:
        bool: True if the operator answered affirmatively
    """
    try:
        answer = ask(f"{message} (y/N): ")
    except EOFError:
        return False
    return answer.strip().lower() in AFFIRMATIVE


def ask_toggle(mode: str, question: str, ask: Callable[[str], str] = input) -> bool:
    """
    Resolves an auto/ask/skip toggle to a decision

    Args:
        mode: "auto", "ask" or "skip"
        question: Question asked in "ask" mode
        ask: Input function

    Returns:
        bool: True if the step should run
    """
    if mode == "skip":
        return False
    if mode == "ask":
        return confirm(question, ask=ask)
    return True
