from __future__ import annotations

"""Translation of CLI-facing job requests into the web service wire model."""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .errors import ValidationError
from .models import Item, JobRequest, Script, WireInput, WireJobRequest, WireOption


def _check_declared(kind: str, names: Iterable[str], declared: set[str], script_id: str) -> None:
    """Reject slot names the script does not declare."""
    unknown = sorted(name for name in names if name not in declared)
    if unknown:
        raise ValidationError(
            "script %s does not declare %s %s" % (script_id, kind, ", ".join(unknown))
        )


def _items(values: Sequence[Any]) -> list[Item]:
    """Build wire items keeping the caller's order."""
    return [Item(value=str(value)) for value in values]


def _sorted_slots(slots: Mapping[str, Sequence[Any]]) -> list[tuple[str, Sequence[Any]]]:
    # Positional pairing of inputs/options on the service side needs a stable order.
    return sorted(slots.items(), key=lambda entry: entry[0])


class RequestTranslator:
    """Converts typed job requests to web service job requests."""

    @staticmethod
    def translate(request: JobRequest, script: Script) -> WireJobRequest:
        """Build the wire job request for `request` against `script`.

        Inputs and options are emitted sorted by slot name. An option holding
        a single value is sent as a scalar, two or more values as an item
        list, and an option without values is left out.
        """
        _check_declared("input", request.inputs.keys(), script.input_names(), script.id)
        _check_declared("option", request.options.keys(), script.option_names(), script.id)

        wire = WireJobRequest(
            script_href=script.href or script.id,
            nicename=request.nicename,
            priority=request.priority,
        )
        for name, locators in _sorted_slots(request.inputs):
            wire.inputs.append(WireInput(name=name, items=_items(locators)))

        for name, values in _sorted_slots(request.options):
            if not values:
                continue
            if len(values) == 1:
                wire.options.append(WireOption(name=name, value=str(values[0])))
            else:
                wire.options.append(WireOption(name=name, items=_items(values)))
        return wire
