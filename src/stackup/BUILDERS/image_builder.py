"""
Resolves the image a service runs from, building it when needed.
"""
import logging
import threading
from typing import Dict

from ..MODELS.service_definition import ServiceSpec
from ..RUNNERS.container_runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class ImageBuilder:
    """
    Decides between a service's ``image`` and its ``build`` source.

    A service with a build source is built when a build is forced, or when
    no image for it is known yet; built references are remembered for the
    life of the builder.
    """
    def __init__(self, runtime: ContainerRuntime):
        """
        :param runtime: The runtime that performs the actual builds.
        """
        self.runtime = runtime
        self._built: Dict[str, str] = {}
        self._lock = threading.Lock()

    def resolve(self, spec: ServiceSpec, force_build: bool = False) -> str:
        """
        Returns the image reference to run ``spec`` from.

        :param spec: The service.
        :param force_build: Rebuild even when an image is already available.
        """
        if spec.build is None:
            return spec.image

        with self._lock:
            cached = self._built.get(spec.name)
        if not force_build:
            if cached:
                return cached
            if spec.image and self.runtime.has_image(spec.image):
                logger.debug("Image %s already present for %s", spec.image, spec.name)
                return spec.image

        image_ref = self.runtime.build(spec)
        with self._lock:
            self._built[spec.name] = image_ref
        return image_ref
