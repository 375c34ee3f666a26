"""
Document Editing
================
Immutable edit operations on a document tree.

Every operation returns a new document and leaves its input untouched.
Added nodes always get a fresh uuid; edited nodes keep theirs. Removing or
editing an unknown uuid is a no-op that still returns a copy.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, TypeVar

from pydantic import BaseModel

from .models import (
    CustomStatement,
    Document,
    Material,
    MaterialProperty,
    MeasurementResult,
    Producer,
    Quantity,
    ResponsiblePerson,
    new_uuid,
)

logger = logging.getLogger(__name__)

NodeT = TypeVar("NodeT", bound=BaseModel)

# Quantity fields that callers may not set directly
DERIVED_QUANTITY_FIELDS = frozenset({"uuid", "dsi_value", "dsi_unit"})


def _renew_uuids(node: BaseModel) -> None:
    """Give ``node`` and every nested node with a uuid a new one, in place."""
    if "uuid" in type(node).model_fields:
        node.uuid = new_uuid()
    for name in type(node).model_fields:
        value = getattr(node, name)
        children = value if isinstance(value, list) else [value]
        for child in children:
            if isinstance(child, BaseModel):
                _renew_uuids(child)


def _fresh(node: Optional[NodeT], factory: type[NodeT]) -> NodeT:
    if node is None:
        return factory()
    copied = node.model_copy(deep=True)
    _renew_uuids(copied)
    return copied


def _without(items: list[NodeT], uuid: str, kind: str) -> list[NodeT]:
    kept = [item for item in items if item.uuid != uuid]
    if len(kept) == len(items):
        logger.debug(f"No {kind} with uuid {uuid}, nothing removed")
    return kept


def _find_property(
    document: Document,
    property_uuid: str,
) -> Optional[MaterialProperty]:
    for prop in document.properties:
        if prop.uuid == property_uuid:
            return prop
    logger.debug(f"No property with uuid {property_uuid}")
    return None


def _find_result(
    document: Document,
    property_uuid: str,
    result_uuid: str,
) -> Optional[MeasurementResult]:
    prop = _find_property(document, property_uuid)
    if prop is None:
        return None
    for result in prop.results:
        if result.uuid == result_uuid:
            return result
    logger.debug(f"No result with uuid {result_uuid} in {property_uuid}")
    return None


# ─── Administrative Data ──────────────────────────────────────────────────────


def add_producer(document: Document, producer: Optional[Producer] = None) -> Document:
    updated = document.model_copy(deep=True)
    updated.administrative_data.producers.append(_fresh(producer, Producer))
    return updated


def remove_producer(document: Document, uuid: str) -> Document:
    updated = document.model_copy(deep=True)
    admin = updated.administrative_data
    admin.producers = _without(admin.producers, uuid, "producer")
    return updated


def add_responsible_person(
    document: Document,
    person: Optional[ResponsiblePerson] = None,
) -> Document:
    updated = document.model_copy(deep=True)
    updated.administrative_data.responsible_persons.append(
        _fresh(person, ResponsiblePerson)
    )
    return updated


def remove_responsible_person(document: Document, uuid: str) -> Document:
    updated = document.model_copy(deep=True)
    admin = updated.administrative_data
    admin.responsible_persons = _without(
        admin.responsible_persons, uuid, "responsible person"
    )
    return updated


def regenerate_identifier(document: Document) -> Document:
    """Assign a new unique identifier to the document."""
    updated = document.model_copy(deep=True)
    updated.administrative_data.unique_identifier = new_uuid()
    return updated


# ─── Materials ────────────────────────────────────────────────────────────────


def add_material(document: Document, material: Optional[Material] = None) -> Document:
    updated = document.model_copy(deep=True)
    updated.materials.append(_fresh(material, Material))
    return updated


def remove_material(document: Document, uuid: str) -> Document:
    updated = document.model_copy(deep=True)
    updated.materials = _without(updated.materials, uuid, "material")
    return updated


# ─── Properties, Results, Quantities ──────────────────────────────────────────


def add_property(
    document: Document,
    prop: Optional[MaterialProperty] = None,
) -> Document:
    """Add a property section; a blank one starts with one empty table."""
    updated = document.model_copy(deep=True)
    if prop is None:
        prop = MaterialProperty(results=[MeasurementResult()])
    updated.properties.append(_fresh(prop, MaterialProperty))
    return updated


def remove_property(document: Document, uuid: str) -> Document:
    updated = document.model_copy(deep=True)
    updated.properties = _without(updated.properties, uuid, "property")
    return updated


def add_result(
    document: Document,
    property_uuid: str,
    result: Optional[MeasurementResult] = None,
) -> Document:
    updated = document.model_copy(deep=True)
    prop = _find_property(updated, property_uuid)
    if prop is not None:
        prop.results.append(_fresh(result, MeasurementResult))
    return updated


def remove_result(document: Document, property_uuid: str, result_uuid: str) -> Document:
    updated = document.model_copy(deep=True)
    prop = _find_property(updated, property_uuid)
    if prop is not None:
        prop.results = _without(prop.results, result_uuid, "result")
    return updated


def _check_quantity_fields(fields: dict[str, Any]) -> None:
    derived = DERIVED_QUANTITY_FIELDS.intersection(fields)
    if derived:
        raise ValueError(f"Derived quantity fields cannot be set: {sorted(derived)}")
    unknown = set(fields) - set(Quantity.model_fields)
    if unknown:
        raise ValueError(f"Unknown quantity fields: {sorted(unknown)}")


def add_quantity(
    document: Document,
    property_uuid: str,
    result_uuid: str,
    **fields: Any,
) -> Document:
    """
    Append a quantity row to a result table.

    Keyword arguments are ``Quantity`` fields (name, value, unit, ...);
    the D-SI fields are computed from value and unit.
    """
    _check_quantity_fields(fields)
    updated = document.model_copy(deep=True)
    result = _find_result(updated, property_uuid, result_uuid)
    if result is not None:
        result.quantities.append(Quantity(**fields).with_dsi())
    return updated


def remove_quantity(
    document: Document,
    property_uuid: str,
    result_uuid: str,
    quantity_uuid: str,
) -> Document:
    updated = document.model_copy(deep=True)
    result = _find_result(updated, property_uuid, result_uuid)
    if result is not None:
        result.quantities = _without(result.quantities, quantity_uuid, "quantity")
    return updated


def update_quantity(document: Document, quantity_uuid: str, **changes: Any) -> Document:
    """
    Edit fields of a quantity anywhere in the document.

    Changing ``value`` or ``unit`` recomputes ``dsi_value``/``dsi_unit``.

    Raises:
        ValueError: ``changes`` names a derived or unknown field.
    """
    _check_quantity_fields(changes)
    updated = document.model_copy(deep=True)

    for prop in updated.properties:
        for result in prop.results:
            for index, quantity in enumerate(result.quantities):
                if quantity.uuid != quantity_uuid:
                    continue
                edited = Quantity.model_validate(
                    {**quantity.model_dump(), **changes}
                )
                if "value" in changes or "unit" in changes:
                    edited = edited.with_dsi()
                result.quantities[index] = edited
                return updated

    logger.debug(f"No quantity with uuid {quantity_uuid}, nothing updated")
    return updated


# ─── Statements ───────────────────────────────────────────────────────────────


def add_custom_statement(document: Document, name: str = "", content: str = "") -> Document:
    updated = document.model_copy(deep=True)
    updated.statements.custom.append(CustomStatement(name=name, content=content))
    return updated


def remove_custom_statement(document: Document, uuid: str) -> Document:
    updated = document.model_copy(deep=True)
    updated.statements.custom = _without(
        updated.statements.custom, uuid, "custom statement"
    )
    return updated
