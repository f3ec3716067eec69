"""
Utilities for string interpolation using environment variables.

Interpolation runs in two passes: ``scan`` finds every placeholder in a
template, ``substitute`` replaces them from a plain ``Dict[str, str]``.
Unresolvable placeholders are collected, never silently replaced with ''.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple

# $$ | ${NAME} | ${NAME:-default} | ${NAME-default} | ${NAME:?message} | ${NAME?message}
_PLACEHOLDER = re.compile(
    r'\$(?:(?P<escaped>\$)|\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<op>:-|-|:\?|\?)(?P<arg>[^}]*))?\})'
)
_MALFORMED = re.compile(r'\$\{(?![A-Za-z_][A-Za-z0-9_]*(?::-|-|:\?|\?|\}))')


@dataclass(frozen=True)
class Placeholder:
    """
    A single ``${...}`` occurrence in a template.
    """
    name: str
    operator: Optional[str]
    argument: str
    start: int
    end: int

    @property
    def has_default(self) -> bool:
        return self.operator in (':-', '-')


@dataclass(frozen=True)
class MissingVariable:
    name: str
    location: str
    message: str = ""

    def describe(self) -> str:
        text = f"{self.name} (in {self.location})" if self.location else self.name
        if self.message:
            text += f": {self.message}"
        return text


class EnvironmentInterpolator:
    """
    Interpolates environment variables in strings and nested structures.
    """

    @staticmethod
    def scan(template: str) -> List[Placeholder]:
        """
        First pass: parse every placeholder out of ``template``.

        :raises ValueError: If the template holds a ``${`` that is not a valid placeholder.
        """
        bad = _MALFORMED.search(template.replace('$$', '\0\0'))
        if bad:
            raise ValueError(f"Invalid placeholder at position {bad.start()} in '{template}'")
        found = []
        for match in _PLACEHOLDER.finditer(template):
            if match.group('escaped'):
                continue
            found.append(Placeholder(
                name=match.group('name'),
                operator=match.group('op'),
                argument=match.group('arg') or '',
                start=match.start(),
                end=match.end(),
            ))
        return found

    @staticmethod
    def missing(template: str, context: Dict[str, str], location: str = "") -> List[MissingVariable]:
        """
        Lists the placeholders in ``template`` that ``context`` cannot satisfy.
        """
        result = []
        for ph in EnvironmentInterpolator.scan(template):
            value = context.get(ph.name)
            if ph.has_default:
                continue
            if ph.operator == ':?' and not value:
                result.append(MissingVariable(ph.name, location, ph.argument or "required"))
            elif ph.operator == '?' and value is None:
                result.append(MissingVariable(ph.name, location, ph.argument or "required"))
            elif ph.operator is None and value is None:
                result.append(MissingVariable(ph.name, location))
        return result

    @staticmethod
    def substitute(template: str, context: Dict[str, str]) -> str:
        """
        Second pass: replace placeholders from ``context``.

        :raises KeyError: If a placeholder cannot be resolved.
        """
        def replace(match):
            if match.group('escaped'):
                return '$'
            name = match.group('name')
            op = match.group('op')
            arg = match.group('arg') or ''
            value = context.get(name)

            if op == ':-':
                return value if value else arg
            if op == '-':
                return value if value is not None else arg
            if op == ':?' and not value:
                raise KeyError(name)
            if value is None:
                raise KeyError(name)
            return value

        return _PLACEHOLDER.sub(replace, template)

    @staticmethod
    def interpolate(template: str, context: Dict[str, str]) -> str:
        """
        Scans then substitutes a single string.

        :raises KeyError: Naming the first unresolved variable.
        """
        misses = EnvironmentInterpolator.missing(template, context)
        if misses:
            raise KeyError(misses[0].name)
        return EnvironmentInterpolator.substitute(template, context)

    @classmethod
    def interpolate_tree(cls, data: Any, context: Dict[str, str]) -> Tuple[Any, List[MissingVariable]]:
        """
        Interpolates every string leaf of a parsed YAML tree.
        Mapping keys are left untouched.

        :return: The substituted tree and every variable that could not be resolved.
                 When the list is non-empty the tree must not be used.
        """
        misses: List[MissingVariable] = []

        def collect(node, path):
            if isinstance(node, str):
                misses.extend(cls.missing(node, context, path))
            elif isinstance(node, dict):
                for key, value in node.items():
                    collect(value, f"{path}.{key}" if path else str(key))
            elif isinstance(node, list):
                for i, value in enumerate(node):
                    collect(value, f"{path}[{i}]")

        def apply(node):
            if isinstance(node, str):
                return cls.substitute(node, context)
            if isinstance(node, dict):
                return {key: apply(value) for key, value in node.items()}
            if isinstance(node, list):
                return [apply(value) for value in node]
            return node

        collect(data, "")
        if misses:
            return data, misses
        return apply(data), []
