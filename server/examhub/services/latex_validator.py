"""
Math markup checks for question content and options, using pylatexenc.

Questions embed formulas as $...$ / $$...$$ (or \\( \\) and \\[ \\]); a teacher
saving unparseable markup gets field-level errors instead of a question that
renders broken in front of students.
"""
import re
from typing import Dict, List, Optional

from pylatexenc.latexwalker import LatexWalker, LatexWalkerError

_DISPLAY = re.compile(r"\$\$([\s\S]*?)\$\$|\\\[([\s\S]*?)\\\]")
_INLINE = re.compile(r"\$([^\$]+?)\$|\\\(([\s\S]+?)\\\)")


def extract_math(text: str) -> List[str]:
    """Formulas found in text, display blocks first."""
    found = []
    for match in _DISPLAY.finditer(text):
        body = match.group(1) or match.group(2)
        if body and body.strip():
            found.append(body.strip())
    remainder = _DISPLAY.sub("", text)
    for match in _INLINE.finditer(remainder):
        body = match.group(1) or match.group(2)
        if body and body.strip():
            found.append(body.strip())
    return found


def check_formula(formula: str) -> Optional[str]:
    """Return an error message, or None when the formula parses."""
    opening, closing = formula.count("{"), formula.count("}")
    if opening != closing:
        return f"unbalanced braces ({opening} opening, {closing} closing)"
    lefts, rights = formula.count(r"\left"), formula.count(r"\right")
    if lefts != rights:
        return f"unbalanced \\left/\\right ({lefts} \\left, {rights} \\right)"
    try:
        LatexWalker(formula, tolerant_parsing=False).get_latex_nodes()
    except LatexWalkerError as e:
        return str(e)
    return None


def check_text(text: Optional[str]) -> List[str]:
    if not text:
        return []
    # An odd number of lone $ means a formula was never closed
    lone_dollars = len(re.findall(r"(?<!\\)\$", _DISPLAY.sub("", text)))
    errors = []
    if lone_dollars % 2:
        errors.append("unterminated $ delimiter")
    for formula in extract_math(text):
        problem = check_formula(formula)
        if problem:
            errors.append(f"invalid formula ${formula}$: {problem}")
    return errors


def validate_question_math(content: Optional[str], options: Optional[Dict[str, str]]) -> List[dict]:
    """
    Check content and every option.

    Returns a list of {"loc": [...], "msg": ..., "type": "latex"} entries,
    empty when everything parses.
    """
    problems = []
    for msg in check_text(content):
        problems.append({"loc": ["body", "content"], "msg": msg, "type": "latex"})
    for label, text in sorted((options or {}).items()):
        for msg in check_text(text):
            problems.append({"loc": ["body", "options", label], "msg": msg, "type": "latex"})
    return problems
