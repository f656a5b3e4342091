"""
Entity Module

Defines the two conversing entities. An Entity is bound to a provider,
model and system prompt but holds no conversation state of its own: its
history, notes and latest image live in the run's EntityState, which the
orchestrator hands in for each turn.
"""

from typing import Dict, Optional, Tuple
import logging

from config import RunConfiguration
from prompts import HISTORY_BEGIN_TEXT, HISTORY_RESPOND_TEXT
from providers import ProviderGateway, get_gateway, get_provider_info
from run_state import EntityId, EntityState, HistoryTurn

logger = logging.getLogger(__name__)


class Entity:
    """
    One side of the glass.

    Entities never see each other's notes or history; the only thing that
    crosses over is the other entity's latest rendered image.
    """

    def __init__(
        self,
        entity_id: EntityId,
        provider: str,
        model: str,
        system_prompt: str,
        api_key: str,
        gateway: Optional[ProviderGateway] = None
    ):
        """
        Initialize an entity.

        Args:
            entity_id: "A" or "B"
            provider: Provider id (see providers.PROVIDERS)
            model: Model identifier
            system_prompt: System prompt text
            api_key: Credential for the provider
            gateway: Adapter to call; defaults to the provider's own
        """
        self.entity_id = entity_id
        self.provider = provider
        self.model = model
        self.system_prompt = system_prompt
        self.api_key = api_key
        self.gateway = gateway or get_gateway(provider)

        logger.info(f"Initialized entity {entity_id} on {provider}/{model}")

    @property
    def color(self) -> str:
        return get_provider_info(self.provider).color

    @property
    def label(self) -> str:
        return f"{self.entity_id} ({get_provider_info(self.provider).name})"

    async def respond(self, state: EntityState, image: Optional[bytes]) -> str:
        """
        Ask the provider for this entity's next move.

        Args:
            state: This entity's private run state
            image: The other entity's latest image, or None on the opening turn

        Returns:
            Raw reply text

        Raises:
            ProviderError: If the provider call fails
        """
        if state.entity_id != self.entity_id:
            raise ValueError(
                f"Entity {self.entity_id} was handed the state of entity {state.entity_id}"
            )

        logger.info(
            f"Entity {self.entity_id} calling {self.provider}/{self.model} "
            f"(history={len(state.history)}, image={'yes' if image else 'no'}, "
            f"notes={len(state.notes)} chars)"
        )
        return await self.gateway.invoke(
            self.model,
            self.api_key,
            self.system_prompt,
            list(state.history),
            image,
            state.notes or None
        )

    @staticmethod
    def shown_turn(image: Optional[bytes]) -> HistoryTurn:
        """History entry for what the entity was shown this turn."""
        if image is None:
            return HistoryTurn(role="user", text=HISTORY_BEGIN_TEXT)
        return HistoryTurn(role="user", text=HISTORY_RESPOND_TEXT, image=image)


class EntityFactory:
    """
    Factory for creating the entity pair from a run configuration.
    """

    @staticmethod
    def create_pair(
        config: RunConfiguration,
        gateways: Optional[Dict[str, ProviderGateway]] = None
    ) -> Tuple[Entity, Entity]:
        """
        Create entities A and B.

        Args:
            config: Validated run configuration
            gateways: Optional provider-id to gateway overrides (e.g. fakes in tests)

        Returns:
            Tuple of (entity_a, entity_b)
        """
        gateways = gateways or {}
        entities = []
        for entity_id in ("A", "B"):
            entity_config = config.entity(entity_id)
            entities.append(Entity(
                entity_id=entity_id,
                provider=entity_config.provider,
                model=entity_config.resolved_model,
                system_prompt=config.system_prompt_for(entity_id),
                api_key=config.api_key_for(entity_config.provider),
                gateway=gateways.get(entity_config.provider)
            ))

        logger.info(f"Created entity pair: {entities[0].label} / {entities[1].label}")
        return entities[0], entities[1]
