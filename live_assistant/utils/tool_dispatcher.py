"""
Correlated execution of remote function calls.

Every accepted ToolInvocation is answered exactly once, from its own asyncio
task, so a slow action never holds up the inbound message loop. Calls for
names that were never declared are dropped with a warning.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Any, Iterable, List, Optional, Set, Type

from pydantic import BaseModel, ValidationError

from ..models.data_models import ToolInvocation, ToolResponse, ToolStatus
from .error_handling import ErrorHandler, ComponentError, ErrorSeverity
from .logging_config import get_logger


logger = get_logger("tools")


class ToolErrorPolicy(str, Enum):
    """What to tell the remote model when a bound action raises."""
    REPORT_ERROR = "report_error"      # status: error
    REPORT_SUCCESS = "report_success"  # status: success, so the model carries on without apologizing


ToolAction = Callable[[BaseModel], Awaitable[Optional[Dict[str, Any]]]]
ResponseSender = Callable[[ToolResponse], Awaitable[None]]


@dataclass
class ToolBinding:
    """
    A named external action offered to the remote model.

    Attributes:
        name: Function name as declared to the remote model
        description: Description sent with the declaration
        args_model: Pydantic model the call arguments are validated against
        action: Async callable receiving the validated arguments and
            returning the success payload
        summarize: Optional callable turning validated arguments into a
            summary recorded after a successful call
    """
    name: str
    description: str
    args_model: Type[BaseModel]
    action: ToolAction
    summarize: Optional[Callable[[BaseModel], Any]] = None

    def declaration(self) -> Dict[str, Any]:
        """Function declaration for the session setup."""
        return {
            'name': self.name,
            'description': self.description,
            'parameters': _schema_to_declaration(
                self.args_model.model_json_schema(by_alias=True),
                self.description
            )
        }


def _schema_to_declaration(schema: Dict[str, Any], description: str) -> Dict[str, Any]:
    """Convert a pydantic JSON schema to the OBJECT/STRING declaration format."""
    properties = {}
    for key, prop in schema.get('properties', {}).items():
        converted = {'type': str(prop.get('type', 'string')).upper()}
        if prop.get('description'):
            converted['description'] = prop['description']
        if isinstance(prop.get('enum'), list) and prop['enum']:
            converted['enum'] = prop['enum']
        properties[key] = converted

    return {
        'type': 'OBJECT',
        'description': description,
        'properties': properties,
        'required': list(schema.get('required', []))
    }


class ToolCallDispatcher:
    """
    Runs bound actions for tool calls and sends back one response per call.

    The aggregate "tool processing" flag is true while any invocation is
    outstanding and is cleared only once the last one settles.
    """

    def __init__(
        self,
        bindings: Optional[Iterable[ToolBinding]] = None,
        error_policy: ToolErrorPolicy = ToolErrorPolicy.REPORT_ERROR,
        on_processing_change: Optional[Callable[[bool], None]] = None,
        on_success: Optional[Callable[[ToolBinding, BaseModel, ToolResponse], None]] = None,
        error_handler: Optional[ErrorHandler] = None
    ):
        self._bindings: Dict[str, ToolBinding] = {}
        for binding in bindings or []:
            self._bindings[binding.name] = binding
        self.error_policy = ToolErrorPolicy(error_policy)
        self._on_processing_change = on_processing_change
        self._on_success = on_success
        self.error_handler = error_handler or ErrorHandler()

        self._tasks: Dict[str, asyncio.Task] = {}
        self._answered: Set[str] = set()

    @property
    def tool_names(self) -> List[str]:
        return list(self._bindings)

    @property
    def outstanding(self) -> int:
        return len(self._tasks)

    @property
    def is_processing(self) -> bool:
        return bool(self._tasks)

    def declarations(self) -> List[Dict[str, Any]]:
        return [binding.declaration() for binding in self._bindings.values()]

    async def dispatch(self, invocation: ToolInvocation) -> Optional[ToolResponse]:
        """
        Run the action bound to `invocation.name`.

        Returns:
            The correlated response, or None for an unknown tool name
        """
        binding = self._bindings.get(invocation.name)
        if binding is None:
            logger.warning(f"Ignoring call to unknown tool '{invocation.name}' (id={invocation.id})")
            return None

        try:
            args = binding.args_model.model_validate(invocation.arguments)
        except ValidationError as e:
            # Malformed arguments are answered with an error so the remote
            # turn does not stall waiting for a response.
            self.error_handler.handle_error(ComponentError(
                component="tools",
                severity=ErrorSeverity.RECOVERABLE,
                message=f"Invalid arguments for {invocation.name}",
                exception=e,
                context={'id': invocation.id}
            ))
            return ToolResponse(id=invocation.id, name=invocation.name, status=ToolStatus.ERROR)

        logger.info(f"Executing tool: {invocation.name} (id={invocation.id})")
        try:
            payload = await binding.action(args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_handler.handle_error(ComponentError(
                component="tools",
                severity=ErrorSeverity.RECOVERABLE,
                message=f"Tool {invocation.name} failed",
                exception=e,
                context={'id': invocation.id, 'policy': self.error_policy.value}
            ))
            if self.error_policy == ToolErrorPolicy.REPORT_SUCCESS:
                return ToolResponse(id=invocation.id, name=invocation.name, status=ToolStatus.SUCCESS)
            return ToolResponse(id=invocation.id, name=invocation.name, status=ToolStatus.ERROR)

        response = ToolResponse(
            id=invocation.id,
            name=invocation.name,
            status=ToolStatus.SUCCESS,
            payload=dict(payload or {})
        )
        if self._on_success:
            try:
                self._on_success(binding, args, response)
            except Exception as e:
                logger.warning(f"Tool success listener error: {e}")
        return response

    def submit(self, invocation: ToolInvocation, send: ResponseSender) -> Optional[asyncio.Task]:
        """
        Run `invocation` in its own task and send its response when done.

        Returns:
            The task, or None if the call was dropped (unknown name or an id
            that is already in flight or answered)
        """
        if invocation.name not in self._bindings:
            logger.warning(f"Ignoring call to unknown tool '{invocation.name}' (id={invocation.id})")
            return None
        if invocation.id in self._tasks or invocation.id in self._answered:
            logger.warning(f"Ignoring duplicate tool call id={invocation.id}")
            return None

        was_processing = self.is_processing
        task = asyncio.create_task(
            self._run(invocation, send),
            name=f"tool-{invocation.name}-{invocation.id}"
        )
        self._tasks[invocation.id] = task
        task.add_done_callback(lambda _t, call_id=invocation.id: self._settle(call_id))
        if not was_processing:
            self._notify_processing(True)
        return task

    async def _run(self, invocation: ToolInvocation, send: ResponseSender) -> None:
        response = await self.dispatch(invocation)
        if response is None:
            return
        self._answered.add(invocation.id)
        try:
            await send(response)
            logger.info(f"Sent tool response: {invocation.name} (id={invocation.id}, status={response.status.value})")
        except Exception as e:
            self.error_handler.handle_error(ComponentError(
                component="tools",
                severity=ErrorSeverity.WARNING,
                message=f"Failed to send response for {invocation.name}",
                exception=e,
                context={'id': invocation.id}
            ))

    def _settle(self, call_id: str) -> None:
        self._tasks.pop(call_id, None)
        if not self._tasks:
            self._notify_processing(False)

    def _notify_processing(self, processing: bool) -> None:
        if self._on_processing_change:
            try:
                self._on_processing_change(processing)
            except Exception as e:
                logger.warning(f"Tool processing listener error: {e}")

    async def wait_idle(self) -> None:
        """Wait until every outstanding invocation has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel outstanding invocations (session teardown)."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def reset(self) -> None:
        """Forget answered ids; call ids are scoped to one session."""
        self._answered.clear()
