"""
Shared session state: current view, the committed problem, and the debug flag.

The orchestrator is the only writer of the problem record and the debug
flag. Readers always receive a copy.
"""

import copy
import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class View(str, Enum):
    """What the presentation layer is showing; anything but QUEUE means debug."""
    QUEUE = "queue"
    RESULTS = "results"
    DEBUG = "debug"


@dataclass
class ProblemInfo:
    """Structured result of a successful extraction."""
    problem_statement: str
    input_format: Dict[str, Any] = field(default_factory=dict)
    output_format: Dict[str, Any] = field(default_factory=dict)
    complexity: Optional[Dict[str, str]] = None
    test_cases: List[Any] = field(default_factory=list)
    validation_type: Optional[str] = None
    difficulty: Optional[str] = None
    constraints: Optional[List[Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Payload form; fields a workflow never set are left out."""
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_screenshot(cls, text: str) -> 'ProblemInfo':
        return cls(
            problem_statement=text,
            input_format={"description": "Generated from screenshot", "parameters": []},
            output_format={"description": "Generated from screenshot", "type": "string", "subtype": "text"},
            complexity={"time": "N/A", "space": "N/A"},
            test_cases=[],
            validation_type="manual",
            difficulty="custom",
        )

    @classmethod
    def from_audio(cls, text: str) -> 'ProblemInfo':
        return cls(
            problem_statement=text,
            input_format={},
            output_format={},
            constraints=[],
            test_cases=[],
        )

    @classmethod
    def from_mcq(cls, text: str) -> 'ProblemInfo':
        return cls(
            problem_statement=text,
            input_format={"description": "MCQ Mode", "parameters": []},
            output_format={"description": "MCQ Answer", "type": "string", "subtype": "text"},
            complexity={"time": "N/A", "space": "N/A"},
            test_cases=[],
            validation_type="manual",
            difficulty="easy",
        )


class SessionState:
    """In-memory shared state accessor."""

    def __init__(self, view: View = View.QUEUE):
        self._view = View(view)
        self._problem_info: Optional[ProblemInfo] = None
        self._has_debugged = False

    def get_view(self) -> View:
        return self._view

    def set_view(self, view: "View | str") -> None:
        view = View(view)
        if view is not self._view:
            logger.debug(f"View: {self._view.value} → {view.value}")
        self._view = view

    def get_problem_info(self) -> Optional[ProblemInfo]:
        return copy.deepcopy(self._problem_info)

    def set_problem_info(self, problem_info: ProblemInfo) -> None:
        self._problem_info = copy.deepcopy(problem_info)

    def has_debugged(self) -> bool:
        return self._has_debugged

    def set_has_debugged(self, value: bool) -> None:
        self._has_debugged = bool(value)
