"""Construction of state machines for a protocol version and registration strategy."""

import logging

from ..oauth.protocols import RegistrationStrategy, get_profile
from ..oauth.registration import create_registration_handler
from ..proxy.client import Fetcher
from ..utils.errors import UnsupportedRegistrationStrategyError
from .config import FlowConfig
from .session import FlowSession
from .state_machine import OAuthStateMachine, StateGetter, StateUpdater

logger = logging.getLogger(__name__)


def create_oauth_state_machine(
    config: FlowConfig,
    fetcher: Fetcher,
    get_state: StateGetter,
    update_state: StateUpdater,
    *,
    session: FlowSession | None = None,
    auto_continue: bool = False,
) -> OAuthStateMachine:
    """Create a state machine bound to one protocol version and strategy.

    Illegal combinations fail here rather than in the middle of a flow.

    Raises:
        UnsupportedProtocolVersionError: If the protocol version is unknown
        UnsupportedRegistrationStrategyError: If the strategy is not legal for the version
        InvalidClientMetadataUrlError: If CIMD is selected without an HTTPS client id URL
    """
    profile = get_profile(config.protocol_version)
    strategy = RegistrationStrategy(config.registration_strategy or profile.default_strategy)

    if not profile.supports(strategy):
        raise UnsupportedRegistrationStrategyError(
            strategy.value,
            profile.version.value,
            [s.value for s in profile.registration_strategies],
        )

    registration = create_registration_handler(strategy, config, profile, fetcher)
    logger.info(
        f"Created OAuth flow for {config.server_url} "
        f"(protocol {profile.version.value}, registration {strategy.value})"
    )
    return OAuthStateMachine(
        config,
        profile,
        registration,
        fetcher,
        get_state,
        update_state,
        session=session,
        auto_continue=auto_continue,
    )
