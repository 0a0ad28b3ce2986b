from __future__ import annotations
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from pydantic import ValidationError

from .casting_methods import CastingMethodHandler, ManaCastingHandler, SlotCastingHandler
from .casting_types import (
    CastingContext, CastingCost, CastingMethodType, CastingOptionsAdapter, CastingResult,
    ManaCastingOptions, SlotCastingOptions,
)
from .errors import ErrorKind
from .schema_models import AbilityDefinition, AbilityKind
from .state import CastingEnvironment, CharacterSession

logger = logging.getLogger(__name__)

OptionsLike = Union[ManaCastingOptions, SlotCastingOptions, Mapping[str, Any]]

def _method_of(options: OptionsLike) -> Optional[str]:
    if isinstance(options, Mapping):
        return options.get("method_type")
    return options.method_type

class HandlerRegistry:
    def __init__(self, handlers: Optional[List[CastingMethodHandler]] = None):
        self._handlers: Dict[str, CastingMethodHandler] = {}
        for h in handlers or []:
            self.register(h)

    def register(self, handler: CastingMethodHandler) -> None:
        self._handlers[handler.method_type] = handler

    def get(self, method_type: str) -> Optional[CastingMethodHandler]:
        return self._handlers.get(method_type)

    def method_types(self) -> List[str]:
        return list(self._handlers.keys())

    def __iter__(self) -> Iterator[CastingMethodHandler]:
        return iter(list(self._handlers.values()))

    def __len__(self) -> int:
        return len(self._handlers)

def default_registry(mana_resource_id: str = "mana", slot_resource_id: str = "pilfered_power") -> HandlerRegistry:
    return HandlerRegistry([ManaCastingHandler(mana_resource_id), SlotCastingHandler(slot_resource_id)])

class CastingDispatcher:
    """
    Public entry point for casting. Resolves abilities, picks the handler for the
    requested method and enforces availability -> cost -> cast. Performs no mutation
    itself; `cast_ability` runs the handler inside a session transaction, which is
    committed only on success.
    """

    def __init__(self, session: CharacterSession, registry: HandlerRegistry):
        self.session = session
        self.registry = registry

    # ------- helpers -------
    def _find_ability(self, ability_id: str, kind: Optional[AbilityKind] = None) -> Optional[AbilityDefinition]:
        for ability in self.session.character.abilities:
            if ability.id == ability_id and (kind is None or ability.kind == kind):
                return ability
        return None

    @staticmethod
    def _coerce_options(options: OptionsLike) -> Union[ManaCastingOptions, SlotCastingOptions]:
        if isinstance(options, (ManaCastingOptions, SlotCastingOptions)):
            return options
        return CastingOptionsAdapter.validate_python(dict(options))

    def _context(self, ability: AbilityDefinition, options, env: CastingEnvironment) -> CastingContext:
        return CastingContext(ability=ability, options=options, env=env)

    # ------- public API -------
    def cast_ability(self, ability_id: str, options: OptionsLike, *, kind: Optional[AbilityKind] = None) -> CastingResult:
        try:
            return self._cast(ability_id, options, kind)
        except Exception as e:
            logger.exception("unexpected failure casting %s", ability_id)
            return CastingResult.fail(ErrorKind.EVALUATION_ERROR, str(e) or e.__class__.__name__)

    def _cast(self, ability_id: str, options: OptionsLike, kind: Optional[AbilityKind]) -> CastingResult:
        ability = self._find_ability(ability_id, kind)
        if ability is None:
            return CastingResult.fail(ErrorKind.NOT_FOUND, f"Ability {ability_id} not found")

        method = _method_of(options)
        handler = self.registry.get(str(method))
        if handler is None:
            return CastingResult.fail(ErrorKind.METHOD_UNAVAILABLE, f"Unknown casting method: {method}")
        try:
            opts = self._coerce_options(options)
        except ValidationError as e:
            return CastingResult.fail(ErrorKind.METHOD_UNAVAILABLE, f"Invalid options for {handler.get_display_name()}: {e}")

        with self.session.transaction() as tx:
            ctx = self._context(ability, opts, tx.env)
            if not handler.is_available(ctx):
                tx.rollback()
                return CastingResult.fail(ErrorKind.METHOD_UNAVAILABLE, f"{handler.get_display_name()} is not available")
            cost = handler.calculate_cost(ctx)
            if not cost.can_afford:
                tx.rollback()
                detail = cost.warning_message or cost.description
                return CastingResult.fail(ErrorKind.INSUFFICIENT_RESOURCE,
                                          f"Cannot afford to cast using {handler.get_display_name()}: {detail}")
            result = handler.cast(ctx)
            if not result.success:
                logger.info("cast of %s via %s failed: %s", ability_id, handler.method_type, result.error)
                tx.rollback()
            return result

    def get_available_methods(self, ability_id: str, partial_options: Optional[Mapping[str, Any]] = None) -> List[CastingMethodType]:
        ability = self._find_ability(ability_id)
        if ability is None:
            return []
        env = self.session.preview()
        out: List[CastingMethodType] = []
        for handler in self.registry:
            try:
                opts = handler.default_options(ability, partial_options)
            except ValidationError:
                continue
            if handler.is_available(self._context(ability, opts, env)):
                out.append(handler.method_type)
        return out

    def calculate_cost(self, ability_id: str, options: OptionsLike) -> Optional[CastingCost]:
        ability = self._find_ability(ability_id)
        if ability is None:
            return None
        method = _method_of(options)
        handler = self.registry.get(str(method))
        if handler is None:
            return None
        try:
            opts = self._coerce_options(options)
        except ValidationError:
            return None
        ctx = self._context(ability, opts, self.session.preview())
        if not handler.is_available(ctx):
            return None
        return handler.calculate_cost(ctx)

    def can_upcast(self, ability_id: str, options: OptionsLike) -> bool:
        ability = self._find_ability(ability_id)
        if ability is None:
            return False
        method = _method_of(options)
        handler = self.registry.get(str(method))
        if handler is None:
            return False
        try:
            opts = self._coerce_options(options)
        except ValidationError:
            return False
        return handler.can_upcast(self._context(ability, opts, self.session.preview()))

    def get_method_info(self, method_type: str) -> Optional[dict[str, str]]:
        handler = self.registry.get(method_type)
        if handler is None:
            return None
        return {"display_name": handler.get_display_name(), "description": handler.get_description()}

    def get_all_method_types(self) -> List[str]:
        return self.registry.method_types()
