import threading
import uuid
from collections import OrderedDict
from typing import Optional
import logging

from onboarding.core.navigator import OnboardingNavigator

logger = logging.getLogger(__name__)


class FlowRegistry:
    """Live navigators, one per browser session, oldest evicted first"""

    def __init__(self, max_flows: int = 1000):
        self.max_flows = max_flows
        self.flows: "OrderedDict[str, OnboardingNavigator]" = OrderedDict()
        self._lock = threading.Lock()

    def add(self, navigator: OnboardingNavigator) -> str:
        flow_id = str(uuid.uuid4())
        with self._lock:
            self.flows[flow_id] = navigator
            while len(self.flows) > self.max_flows:
                evicted, _ = self.flows.popitem(last=False)
                logger.info(f"Evicted flow {evicted}")
        logger.debug(f"Registered flow {flow_id}")
        return flow_id

    def get(self, flow_id: str) -> Optional[OnboardingNavigator]:
        with self._lock:
            navigator = self.flows.get(flow_id)
            if navigator is not None:
                self.flows.move_to_end(flow_id)
            return navigator

    def remove(self, flow_id: str) -> bool:
        with self._lock:
            return self.flows.pop(flow_id, None) is not None

    def __len__(self) -> int:
        return len(self.flows)
