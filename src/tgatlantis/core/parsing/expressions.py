from __future__ import annotations

"""
Terragrunt Expression Evaluation.

hcl2 returns every non-literal expression as a "${...}" template string.
This module evaluates the small subset of Terragrunt expressions that
dependency resolution relies on: path helper functions, environment lookups
and references to other locals. Anything outside that subset raises
UnresolvableExpression and is treated by callers as a non-literal value.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from tgatlantis.domain.constants import DEFAULT_TERRAGRUNT_FILENAME

logger = logging.getLogger(__name__)

_TOKEN_RX = re.compile(
    r'\s*(?:'
    r'(?P<string>"(?:[^"\\]|\\.)*")'
    r'|(?P<number>-?\d+(?:\.\d+)?)'
    r'|(?P<ident>[A-Za-z_][A-Za-z0-9_\-]*)'
    r'|(?P<punct>[().,\[\]])'
    r')'
)

# Bound on find_in_parent_folders upward traversal
_MAX_PARENT_FOLDERS = 100


class UnresolvableExpression(Exception):
    """The expression uses syntax or functions outside the supported subset."""


@dataclass
class EvaluationContext:
    """
    Inputs visible to Terragrunt functions while evaluating one file.

    Attributes:
        config_path: Terragrunt config the evaluation is performed for. When
                     an included parent is evaluated this is still the child.
        include_path: Included parent file, when one is in scope.
        root: Repository root used by get_repo_root().
        locals: Already-evaluated locals, addressable as local.<name>.
    """
    config_path: str
    include_path: Optional[str] = None
    root: Optional[str] = None
    locals: Dict[str, Any] = field(default_factory=dict)

    @property
    def config_dir(self) -> str:
        return os.path.dirname(os.path.abspath(self.config_path))


def find_in_parent_folders(start_config: str, name: str = DEFAULT_TERRAGRUNT_FILENAME) -> Optional[str]:
    """
    Search the directories above start_config for a file called name.

    The search starts in the parent of the config's directory, matching
    Terragrunt's behavior.

    Returns:
        Optional[str]: Absolute path of the first match, or None.
    """
    previous = os.path.dirname(os.path.abspath(start_config))
    for _ in range(_MAX_PARENT_FOLDERS):
        current = os.path.dirname(previous)
        if current == previous:
            return None
        candidate = os.path.join(current, name)
        if os.path.isfile(candidate):
            return candidate
        previous = current
    return None


# ==============================================================================
# EVALUATOR
# ==============================================================================

class ExpressionEvaluator:
    """Evaluates hcl2 values (recursively) against an EvaluationContext."""

    def __init__(self, context: EvaluationContext) -> None:
        self.context = context
        self._functions: Dict[str, Callable[..., Any]] = {
            "find_in_parent_folders": self._find_in_parent_folders,
            "get_terragrunt_dir": lambda: self.context.config_dir,
            "get_original_terragrunt_dir": lambda: self.context.config_dir,
            "get_parent_terragrunt_dir": self._get_parent_terragrunt_dir,
            "path_relative_to_include": self._path_relative_to_include,
            "path_relative_from_include": self._path_relative_from_include,
            "get_env": self._get_env,
            "get_repo_root": lambda: self.context.root or self.context.config_dir,
        }

    def evaluate(self, value: Any) -> Any:
        """
        Evaluate a parsed value.

        Args:
            value: A scalar, list, dict or template string from hcl2.

        Returns:
            Any: The value with every interpolation resolved.

        Raises:
            UnresolvableExpression: If any part cannot be evaluated.
        """
        if isinstance(value, str):
            return self._evaluate_template(_unquote(value))
        if isinstance(value, list):
            return [self.evaluate(v) for v in value]
        if isinstance(value, dict):
            return {k: self.evaluate(v) for k, v in value.items()}
        return value

    def evaluate_literal_string(self, value: Any) -> Optional[str]:
        """Return value if it is a plain string with no interpolation, else None."""
        if not isinstance(value, str):
            return None
        value = _unquote(value)
        if "${" in value.replace("$${", ""):
            return None
        return value.replace("$${", "${")

    def evaluate_string(self, value: Any) -> Optional[str]:
        """Evaluate value expecting a string; None when unresolvable or not a string."""
        try:
            result = self.evaluate(value)
        except UnresolvableExpression as e:
            logger.debug(f"Unresolvable expression in {self.context.config_path}: {e}")
            return None
        return result if isinstance(result, str) else None

    def evaluate_value(self, value: Any) -> Any:
        """
        Lenient evaluation: list items that cannot be resolved are dropped and
        any other unresolvable value becomes None.
        """
        if isinstance(value, list):
            out: List[Any] = []
            for item in value:
                try:
                    out.append(self.evaluate(item))
                except UnresolvableExpression as e:
                    logger.debug(f"Dropping unresolvable item in {self.context.config_path}: {e}")
            return out
        try:
            return self.evaluate(value)
        except UnresolvableExpression as e:
            logger.debug(f"Unresolvable expression in {self.context.config_path}: {e}")
            return None

    # --------------------------------------------------------------------------
    # TEMPLATES
    # --------------------------------------------------------------------------

    def _evaluate_template(self, template: str) -> Any:
        parts = _split_template(template)
        if len(parts) == 1 and parts[0][0] == "expr":
            return self._evaluate_expression(parts[0][1])

        out: List[str] = []
        for kind, text in parts:
            if kind == "text":
                out.append(text)
                continue
            result = self._evaluate_expression(text)
            if isinstance(result, bool):
                out.append("true" if result else "false")
            elif isinstance(result, (str, int, float)):
                out.append(str(result))
            else:
                raise UnresolvableExpression(f"cannot interpolate {type(result).__name__} into a string")
        return "".join(out)

    def _evaluate_expression(self, source: str) -> Any:
        tokens = _tokenize(source)
        value, pos = self._parse_expr(tokens, 0)
        if pos != len(tokens):
            raise UnresolvableExpression(f"unexpected trailing input in '{source}'")
        return value

    def _parse_expr(self, tokens: List[Tuple[str, str]], pos: int) -> Tuple[Any, int]:
        if pos >= len(tokens):
            raise UnresolvableExpression("unexpected end of expression")
        kind, text = tokens[pos]

        if kind == "string":
            return _decode_string(text), pos + 1
        if kind == "number":
            return (float(text) if "." in text else int(text)), pos + 1
        if kind != "ident":
            raise UnresolvableExpression(f"unexpected token '{text}'")

        if text in ("true", "false"):
            return text == "true", pos + 1
        if text == "null":
            return None, pos + 1

        # Function call
        if pos + 1 < len(tokens) and tokens[pos + 1][1] == "(":
            args, pos = self._parse_args(tokens, pos + 2)
            func = self._functions.get(text)
            if func is None:
                raise UnresolvableExpression(f"unsupported function '{text}'")
            try:
                return func(*args), pos
            except TypeError as e:
                raise UnresolvableExpression(f"bad arguments for '{text}': {e}") from e

        # Traversal (only local.<name>[.<attr>...] is supported)
        if text != "local":
            raise UnresolvableExpression(f"unsupported reference '{text}'")
        value: Any = self.context.locals
        pos += 1
        traversed = False
        while pos + 1 < len(tokens) and tokens[pos][1] == ".":
            attr = tokens[pos + 1][1]
            if not isinstance(value, dict) or attr not in value:
                raise UnresolvableExpression(f"unknown attribute '{attr}'")
            value = value[attr]
            traversed = True
            pos += 2
        if not traversed:
            raise UnresolvableExpression("bare 'local' reference")
        return value, pos

    def _parse_args(self, tokens: List[Tuple[str, str]], pos: int) -> Tuple[List[Any], int]:
        args: List[Any] = []
        if pos < len(tokens) and tokens[pos][1] == ")":
            return args, pos + 1
        while True:
            value, pos = self._parse_expr(tokens, pos)
            args.append(value)
            if pos >= len(tokens):
                raise UnresolvableExpression("unterminated argument list")
            if tokens[pos][1] == ")":
                return args, pos + 1
            if tokens[pos][1] != ",":
                raise UnresolvableExpression(f"unexpected token '{tokens[pos][1]}' in arguments")
            pos += 1

    # --------------------------------------------------------------------------
    # TERRAGRUNT FUNCTIONS
    # --------------------------------------------------------------------------

    def _find_in_parent_folders(self, name: str = DEFAULT_TERRAGRUNT_FILENAME, *fallback: Any) -> Any:
        found = find_in_parent_folders(self.context.config_path, name)
        if found is not None:
            return found
        if fallback:
            return fallback[0]
        raise UnresolvableExpression(f"'{name}' not found above {self.context.config_dir}")

    def _get_parent_terragrunt_dir(self) -> str:
        if self.context.include_path:
            return os.path.dirname(os.path.abspath(self.context.include_path))
        return self.context.config_dir

    def _path_relative_to_include(self) -> str:
        if not self.context.include_path:
            return "."
        include_dir = os.path.dirname(os.path.abspath(self.context.include_path))
        return os.path.relpath(self.context.config_dir, include_dir).replace(os.sep, "/")

    def _path_relative_from_include(self) -> str:
        if not self.context.include_path:
            return "."
        include_dir = os.path.dirname(os.path.abspath(self.context.include_path))
        return os.path.relpath(include_dir, self.context.config_dir).replace(os.sep, "/")

    @staticmethod
    def _get_env(name: str, *default: Any) -> Any:
        value = os.environ.get(name)
        if value is not None:
            return value
        if default:
            return default[0]
        raise UnresolvableExpression(f"environment variable '{name}' is not set")


# ==============================================================================
# LOCALS EVALUATION
# ==============================================================================

def evaluate_locals(raw_locals: Dict[str, Any], context: EvaluationContext) -> Dict[str, Any]:
    """
    Evaluate a locals map whose entries may reference each other.

    Entries are evaluated in passes until no further entry resolves. Entries
    that never resolve are omitted.

    Args:
        raw_locals: Locals exactly as parsed.
        context: Evaluation context; its locals map is filled in place.

    Returns:
        Dict[str, Any]: The evaluated locals.
    """
    pending = dict(raw_locals)
    evaluator = ExpressionEvaluator(context)
    last_error: Dict[str, str] = {}

    while pending:
        progressed = False
        for name in list(pending):
            try:
                context.locals[name] = evaluator.evaluate(pending[name])
            except UnresolvableExpression as e:
                last_error[name] = str(e)
                continue
            del pending[name]
            progressed = True
        if not progressed:
            break

    for name in pending:
        logger.debug(f"Local '{name}' in {context.config_path} left unresolved: {last_error.get(name)}")

    return dict(context.locals)


# ==============================================================================
# PRIVATE HELPERS
# ==============================================================================

def _unquote(value: str) -> str:
    """Strip the surrounding quotes some hcl2 releases keep on string literals."""
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1]
    return value


def _decode_string(token: str) -> str:
    body = token[1:-1]
    return re.sub(r'\\(.)', lambda m: {"n": "\n", "t": "\t"}.get(m.group(1), m.group(1)), body)


def _tokenize(source: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    source = source.strip()
    while pos < len(source):
        match = _TOKEN_RX.match(source, pos)
        if not match or match.end() == pos:
            raise UnresolvableExpression(f"cannot tokenize '{source[pos:]}'")
        kind = match.lastgroup or ""
        tokens.append((kind, match.group(kind)))
        pos = match.end()
        while pos < len(source) and source[pos].isspace():
            pos += 1
    return tokens


def _split_template(template: str) -> List[Tuple[str, str]]:
    """Split a template into ('text', ...) and ('expr', ...) parts."""
    parts: List[Tuple[str, str]] = []
    text: List[str] = []
    i = 0
    while i < len(template):
        if template.startswith("$${", i):
            text.append("${")
            i += 3
            continue
        if template.startswith("${", i):
            end = _matching_brace(template, i + 2)
            if text:
                parts.append(("text", "".join(text)))
                text = []
            parts.append(("expr", template[i + 2:end]))
            i = end + 1
            continue
        text.append(template[i])
        i += 1
    if text or not parts:
        parts.append(("text", "".join(text)))
    return parts


def _matching_brace(template: str, start: int) -> int:
    depth = 1
    in_string = False
    i = start
    while i < len(template):
        ch = template[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise UnresolvableExpression(f"unterminated interpolation in '{template}'")
