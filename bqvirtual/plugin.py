"""
Host plugin glue.

The record-management host invokes one handler per message and passes
parameters through two dictionaries on an execution context:

    message           input_parameters["Target"]      output_parameters
    Create            HostRecord or attribute dict     "id"
    Retrieve          EntityReference or id            "BusinessEntity"
    RetrieveMultiple  -                                "BusinessEntityCollection"
    Update            HostRecord (id set)              -
    Delete            EntityReference or id            -

execute_plugin() reads the context, calls the matching adapter operation,
and writes the outputs back. The context's primary_entity_name, when set,
names the records of that one call; the adapter itself is left unchanged.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict

from bqvirtual.adapters import VirtualTableAdapter
from bqvirtual.errors import ValidationError
from bqvirtual.records import EntityReference, HostRecord


@dataclass
class PluginContext:
    message_name: str
    primary_entity_name: str = ""
    input_parameters: Dict[str, Any] = field(default_factory=dict)
    output_parameters: Dict[str, Any] = field(default_factory=dict)


def _target(context: PluginContext) -> Any:
    if "Target" not in context.input_parameters:
        raise ValidationError(f"Target is required for {context.message_name}")
    return context.input_parameters["Target"]


def _target_id(context: PluginContext) -> Any:
    target = context.input_parameters.get("Target", context.input_parameters.get("Id"))
    if isinstance(target, (EntityReference, HostRecord)):
        return target.id
    return target


def _create(context: PluginContext, adapter: VirtualTableAdapter, entity_name: str) -> None:
    target = _target(context)
    attributes = target.attributes if isinstance(target, HostRecord) else dict(target)
    record = adapter.create(attributes, entity_name=entity_name)
    if isinstance(target, HostRecord):
        target.id = record.id
    context.output_parameters["id"] = record.id


def _retrieve(context: PluginContext, adapter: VirtualTableAdapter, entity_name: str) -> None:
    record = adapter.retrieve(_target_id(context), entity_name=entity_name)
    if record is None:
        record = HostRecord(entity_name=entity_name)
    context.output_parameters["BusinessEntity"] = record


def _retrieve_multiple(context: PluginContext, adapter: VirtualTableAdapter, entity_name: str) -> None:
    context.output_parameters["BusinessEntityCollection"] = adapter.retrieve_multiple(entity_name=entity_name)


def _update(context: PluginContext, adapter: VirtualTableAdapter, entity_name: str) -> None:
    target = _target(context)
    if not isinstance(target, HostRecord):
        raise ValidationError("Update Target must be a HostRecord")
    adapter.update(target.id, target.attributes, entity_name=entity_name)


def _delete(context: PluginContext, adapter: VirtualTableAdapter, entity_name: str) -> None:
    adapter.delete(_target_id(context), entity_name=entity_name)


HANDLERS: Dict[str, Callable[[PluginContext, VirtualTableAdapter, str], None]] = {
    "Create": _create,
    "Retrieve": _retrieve,
    "RetrieveMultiple": _retrieve_multiple,
    "Update": _update,
    "Delete": _delete,
}


def execute_plugin(context: PluginContext, adapter: VirtualTableAdapter) -> PluginContext:
    """
    Dispatch a host message to the adapter.

    Raises:
        ValidationError: Unknown message or missing Target
    """
    handler = HANDLERS.get(context.message_name)
    if handler is None:
        raise ValidationError(f"Unsupported message: {context.message_name}")
    handler(context, adapter, context.primary_entity_name or adapter.entity_name)
    return context
