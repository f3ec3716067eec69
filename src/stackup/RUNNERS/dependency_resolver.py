"""
Dependency resolution for services to determine startup and shutdown order.
"""
from typing import List, Dict
from ..errors import CycleError, ValidationError
from ..MODELS.orchestration_config import StackConfig


class DependencyResolver:
    """
    Resolves the startup and shutdown order of services based on their dependencies.
    Ties are broken by manifest declaration order, so results are deterministic.
    """
    def _dependencies(self, config: StackConfig) -> Dict[str, List[str]]:
        services = config.services
        for name, svc in services.items():
            for dep in svc.depends_on:
                if dep not in services:
                    raise ValidationError(f"service '{name}' depends on undefined service '{dep}'")
        return {name: list(dict.fromkeys(svc.depends_on)) for name, svc in services.items()}

    def resolve_order(self, config: StackConfig) -> List[str]:
        """
        Determines the correct order to start services using topological sort.

        :param config: The stack configuration.
        :return: Service names in the order they should be started.
        :raises CycleError: If a circular dependency is detected.
        """
        dependencies = self._dependencies(config)

        ordered = []
        visited = set()
        path: List[str] = []

        def visit(name):
            """
            Recursive function for topological sort.
            """
            if name in path:
                start = path.index(name)
                raise CycleError(path[start:] + [name])
            if name not in visited:
                path.append(name)
                for dep in dependencies[name]:
                    visit(dep)
                path.pop()
                visited.add(name)
                ordered.append(name)

        for name in dependencies:
            visit(name)

        return ordered

    def resolve_waves(self, config: StackConfig) -> List[List[str]]:
        """
        Groups services into waves. Every dependency of a service in wave N
        lies in a wave before N, so services within one wave may start in parallel.

        :raises CycleError: If a circular dependency is detected.
        """
        order = self.resolve_order(config)
        dependencies = self._dependencies(config)
        level: Dict[str, int] = {}
        for name in order:
            level[name] = max((level[dep] + 1 for dep in dependencies[name]), default=0)

        waves: List[List[str]] = [[] for _ in range(max(level.values(), default=-1) + 1)]
        for name in dependencies:
            waves[level[name]].append(name)
        return waves

    def dependents(self, config: StackConfig, name: str) -> List[str]:
        """
        Every service that depends on ``name``, directly or transitively.
        """
        dependencies = self._dependencies(config)
        found: List[str] = []
        frontier = [name]
        while frontier:
            current = frontier.pop()
            for svc, deps in dependencies.items():
                if current in deps and svc not in found:
                    found.append(svc)
                    frontier.append(svc)
        return found
