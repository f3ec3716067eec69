"""
Readiness probing for started services.
"""
import logging

from tenacity import Retrying, RetryError, before_sleep_log, retry_if_result, stop_after_delay, wait_fixed

from ..errors import ReadinessTimeoutError, StartError
from ..MODELS.run_state import ContainerHandle
from ..MODELS.service_definition import ServiceSpec
from ..RUNNERS.container_runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class ReadinessProbe:
    """
    Polls a runtime until a service reports ready.

    Services with a health check are polled at the check's interval for
    ``start_period + interval * retries`` seconds; others for the default timeout.
    """
    def __init__(self, runtime: ContainerRuntime, timeout: float = 60.0, interval: float = 1.0):
        self.runtime = runtime
        self.timeout = timeout
        self.interval = interval

    def budget(self, spec: ServiceSpec):
        hc = spec.healthcheck
        if hc is None:
            return self.timeout, self.interval
        return hc.start_period + hc.interval * max(hc.retries, 1), hc.interval

    def _check(self, handle: ContainerHandle, spec: ServiceSpec) -> bool:
        if not self.runtime.is_running(handle):
            raise StartError(spec.name, message="exited before becoming ready")
        return self.runtime.check_health(handle, spec)

    def wait(self, handle: ContainerHandle, spec: ServiceSpec):
        """
        Blocks until ``spec`` is ready.

        :raises ReadinessTimeoutError: If the service is not ready in time.
        :raises StartError: If the service exits while waiting.
        """
        timeout, interval = self.budget(spec)
        retryer = Retrying(
            stop=stop_after_delay(timeout),
            wait=wait_fixed(interval),
            retry=retry_if_result(lambda ready: not ready),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
        )
        try:
            retryer(self._check, handle, spec)
        except RetryError as e:
            raise ReadinessTimeoutError(spec.name, timeout) from e
        logger.info("Service %s is ready", spec.name)
