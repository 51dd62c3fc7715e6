"""Engine boundary, handle lifecycle and the local engine."""

from cedarling_bridge.services.bridge import Cedarling, open_cedarling  # noqa: F401
from cedarling_bridge.services.engine import PolicyEngine, get_policy_engine, set_policy_engine  # noqa: F401
