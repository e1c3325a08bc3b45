"""
Discovery of the references between template resources. A resource implicitly depends on every logical ID it names
in a ``Ref``, an ``Fn::GetAtt`` or a ``${...}`` token of an ``Fn::Sub`` string.
"""
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from stackcraft.cloudformation.models import Resource

# ${Name} or ${Name.Attribute}, but not the ${!Literal} escape
_SUB_TOKEN_REGEX = re.compile(r"\$\{([^!}][^}]*)\}")


@dataclass(frozen=True)
class Reference:
    """A single reference to a logical ID, optionally to one of its attributes."""

    target: str
    attribute: str | None = None
    function: str = "Ref"


def is_pseudo_parameter(name: str) -> bool:
    return name.startswith("AWS::")


def _sub_references(template: str, variables: Iterable[str] = ()) -> list[Reference]:
    result = []
    for token in _SUB_TOKEN_REGEX.findall(template):
        token = token.strip()
        target, _, attribute = token.partition(".")
        if not target or target in variables or is_pseudo_parameter(target):
            continue
        result.append(Reference(target, attribute or None, "Fn::Sub"))
    return result


def collect_references(value: Any) -> list[Reference]:
    """
    Walks the given JSON-like value and returns every reference it contains, in document order. Pseudo parameters
    (``AWS::Region``, ...) are not references.
    """
    result = []
    _collect(value, result)
    return result


def _collect(value: Any, result: list) -> None:
    if isinstance(value, list):
        for item in value:
            _collect(item, result)
        return
    if not isinstance(value, Mapping):
        return

    if len(value) == 1:
        key, arg = next(iter(value.items()))
        if key == "Ref" and isinstance(arg, str):
            if not is_pseudo_parameter(arg):
                result.append(Reference(arg))
            return
        if key == "Fn::GetAtt":
            if isinstance(arg, str):
                target, _, attribute = arg.partition(".")
                result.append(Reference(target, attribute or None, key))
                return
            if isinstance(arg, list) and arg and isinstance(arg[0], str):
                attribute = arg[1] if len(arg) > 1 and isinstance(arg[1], str) else None
                result.append(Reference(arg[0], attribute, key))
                # the attribute name itself may be computed
                _collect(arg[1:], result)
                return
        if key == "Fn::Sub":
            if isinstance(arg, str):
                result.extend(_sub_references(arg))
                return
            if isinstance(arg, list) and arg and isinstance(arg[0], str):
                variables = arg[1] if len(arg) > 1 and isinstance(arg[1], dict) else {}
                result.extend(_sub_references(arg[0], variables.keys()))
                _collect(list(variables.values()), result)
                return

    for item in value.values():
        _collect(item, result)


def extract_references(resource: Resource) -> set[str]:
    """
    Returns the logical IDs the given resource references in its properties. The result may contain IDs of
    parameters, it is up to the caller to tell them apart from resources.
    """
    return {reference.target for reference in collect_references(resource.properties)}
