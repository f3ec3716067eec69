# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Parsers for Docker Compose style YAML manifests.
"""
import logging
import shlex
import yaml
import pydantic
from typing import Dict, Any, List, Optional
from ..errors import SchemaError, ValidationError
from ..MODELS.orchestration_config import StackConfig, NetworkDefinition, VolumeDefinition, DEFAULT_NETWORK
from ..MODELS.service_definition import ServiceSpec, BuildConfig, HealthCheck, PortMapping, VolumeMount
from ..UTILS.string_interpolation import EnvironmentInterpolator

logger = logging.getLogger(__name__)


class ComposeParser:
    """
    Parser for docker-compose.yml files.

    Nothing is started or created while parsing: every schema and
    validation problem is raised before the caller can act on the result.
    """
    def __init__(self, context: Optional[Dict[str, str]] = None):
        """
        Initializes the parser with the variables used for substitution.

        :param context: A dictionary of variables for ``${VAR}`` placeholders.
        """
        self.context = dict(context or {})

    def parse(self, compose_path: str) -> StackConfig:
        """
        Parses a compose file from a path.

        :param compose_path: Path to the compose file.
        :return: Parsed configuration.
        """
        with open(compose_path, 'r') as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> StackConfig:
        """
        Parses a compose file from a string.

        :param content: YAML content of the compose file.
        :return: Parsed configuration.
        :raises SchemaError: If the YAML is malformed or a required field is missing.
        :raises ValidationError: If a variable is undefined or a reference dangles.
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise SchemaError(f"Manifest is not valid YAML: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise SchemaError("Manifest top level must be a mapping")

        try:
            data, misses = EnvironmentInterpolator.interpolate_tree(data, self.context)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if misses:
            details = "; ".join(m.describe() for m in misses)
            raise ValidationError(f"Undefined variable(s): {details}")

        services_spec = data.get('services') or {}
        if not isinstance(services_spec, dict):
            raise SchemaError("'services' must be a mapping")

        services = {}
        for name, spec in services_spec.items():
            services[str(name)] = self._parse_service(str(name), spec)

        config = StackConfig(
            services=services,
            networks=self._parse_networks(data.get('networks')),
            volumes=self._parse_volumes(data.get('volumes')),
        )
        self.validate(config)
        logger.debug("Parsed %d service(s)", len(services))
        return config

    @staticmethod
    def validate(config: StackConfig):
        """
        Checks cross references between services, networks and volumes.

        :raises ValidationError: Listing every dangling reference.
        """
        problems = []
        for name, svc in config.services.items():
            for dep in svc.depends_on:
                if dep not in config.services:
                    problems.append(f"service '{name}' depends on undefined service '{dep}'")
            for net in svc.networks:
                if net != DEFAULT_NETWORK and net not in config.networks:
                    problems.append(f"service '{name}' uses undeclared network '{net}'")
            for vol in svc.named_volumes:
                if vol not in config.volumes:
                    problems.append(f"service '{name}' mounts undeclared volume '{vol}'")
        if problems:
            raise ValidationError("; ".join(problems))

    def _parse_service(self, name: str, spec: Any) -> ServiceSpec:
        """
        Parses a single service definition from a compose file.

        :param name: The name of the service.
        :param spec: The service specification dictionary.
        :return: A ServiceSpec instance.
        """
        if not isinstance(spec, dict):
            raise SchemaError(f"Service '{name}' must be a mapping")
        if not spec.get('image') and not spec.get('build'):
            raise SchemaError(f"Service '{name}' is missing required field 'image' or 'build'")

        try:
            return ServiceSpec(
                name=name,
                image=spec.get('image'),
                build=self._parse_build(name, spec.get('build')),
                command=self._to_list(spec.get('command')),
                working_dir=spec.get('working_dir'),
                environment=self._parse_environment(name, spec.get('environment')),
                ports=self._parse_ports(name, spec.get('ports')),
                networks=self._names(name, 'networks', spec.get('networks')),
                volumes=self._parse_volume_mounts(name, spec.get('volumes')),
                healthcheck=self._parse_healthcheck(name, spec.get('healthcheck')),
                depends_on=self._names(name, 'depends_on', spec.get('depends_on')),
            )
        except pydantic.ValidationError as e:
            raise SchemaError(f"Service '{name}' is invalid: {e}") from e

    def _parse_build(self, name: str, build: Any) -> Optional[BuildConfig]:
        if not build:
            return None
        if isinstance(build, str):
            return BuildConfig(context=build)
        if not isinstance(build, dict) or 'context' not in build:
            raise SchemaError(f"Service '{name}': 'build' needs a 'context'")
        args = build.get('args') or {}
        if isinstance(args, list):
            args = dict(self._split_pair(a) for a in args)
        return BuildConfig(
            context=str(build['context']),
            dockerfile=build.get('dockerfile'),
            target=build.get('target'),
            args={str(k): '' if v is None else str(v) for k, v in args.items()},
        )

    def _parse_environment(self, name: str, env_spec: Any) -> Dict[str, str]:
        environment = {}
        if env_spec is None:
            return environment
        if isinstance(env_spec, list):
            for e in env_spec:
                if '=' in str(e):
                    k, v = self._split_pair(str(e))
                    environment[k] = v
                elif str(e) in self.context:
                    # bare KEY passes the value through from the env source
                    environment[str(e)] = self.context[str(e)]
                else:
                    raise ValidationError(f"Service '{name}': environment variable '{e}' has no value")
        elif isinstance(env_spec, dict):
            for k, v in env_spec.items():
                if v is None:
                    if k not in self.context:
                        raise ValidationError(f"Service '{name}': environment variable '{k}' has no value")
                    v = self.context[k]
                elif isinstance(v, bool):
                    v = 'true' if v else 'false'
                environment[str(k)] = str(v)
        else:
            raise SchemaError(f"Service '{name}': 'environment' must be a list or mapping")
        return environment

    def _parse_ports(self, name: str, ports_spec: Any) -> List[PortMapping]:
        ports = []
        if ports_spec is None:
            return ports
        if not isinstance(ports_spec, list):
            raise SchemaError(f"Service '{name}': 'ports' must be a list")
        for p in ports_spec:
            try:
                if isinstance(p, dict):
                    ports.append(PortMapping(
                        target=int(p['target']),
                        published=int(p['published']) if p.get('published') is not None else None,
                        protocol=p.get('protocol', 'tcp'),
                    ))
                    continue
                text = str(p)
                protocol = 'tcp'
                if '/' in text:
                    text, protocol = text.split('/', 1)
                parts = text.split(':')
                if len(parts) == 1:
                    ports.append(PortMapping(target=int(parts[0]), protocol=protocol))
                else:
                    # HOST:CONTAINER or IP:HOST:CONTAINER
                    published = parts[-2]
                    ports.append(PortMapping(
                        target=int(parts[-1]),
                        published=int(published) if published else None,
                        protocol=protocol,
                    ))
            except (KeyError, ValueError) as e:
                raise SchemaError(f"Service '{name}': invalid port '{p}'") from e
        return ports

    def _parse_volume_mounts(self, name: str, volumes_spec: Any) -> List[VolumeMount]:
        volumes = []
        if volumes_spec is None:
            return volumes
        if not isinstance(volumes_spec, list):
            raise SchemaError(f"Service '{name}': 'volumes' must be a list")
        for v in volumes_spec:
            if isinstance(v, str):
                parts = v.split(':')
                if len(parts) == 2:
                    volumes.append(VolumeMount(source=parts[0], target=parts[1]))
                elif len(parts) == 3:
                    volumes.append(VolumeMount(source=parts[0], target=parts[1], read_only=(parts[2] == 'ro')))
                else:
                    raise SchemaError(f"Service '{name}': invalid volume '{v}'")
            elif isinstance(v, dict):
                if 'source' not in v or 'target' not in v:
                    raise SchemaError(f"Service '{name}': volume needs 'source' and 'target'")
                volumes.append(VolumeMount(
                    source=str(v['source']),
                    target=str(v['target']),
                    read_only=bool(v.get('read_only', False)),
                ))
            else:
                raise SchemaError(f"Service '{name}': invalid volume '{v}'")
        return volumes

    def _parse_healthcheck(self, name: str, hc: Any) -> Optional[HealthCheck]:
        if not hc:
            return None
        if not isinstance(hc, dict) or 'test' not in hc:
            raise SchemaError(f"Service '{name}': 'healthcheck' needs a 'test'")
        if isinstance(hc['test'], str):
            test = ['sh', '-c', hc['test']]
        else:
            test = [str(t) for t in hc['test']]
        if test and test[0] in ('CMD', 'CMD-SHELL'):
            test = test[1:] if test[0] == 'CMD' else ['sh', '-c', ' '.join(test[1:])]
        return HealthCheck(
            test=test,
            interval=self._seconds(hc.get('interval'), 5.0),
            timeout=self._seconds(hc.get('timeout'), 30.0),
            retries=int(hc.get('retries', 3)),
            start_period=self._seconds(hc.get('start_period'), 0.0),
        )

    def _parse_networks(self, networks: Any) -> Dict[str, NetworkDefinition]:
        result = {}
        if networks and not isinstance(networks, dict):
            raise SchemaError("'networks' must be a mapping")
        for net_name, net in (networks or {}).items():
            net = net or {}
            if not isinstance(net, dict):
                raise SchemaError(f"Network '{net_name}' must be a mapping")
            result[net_name] = NetworkDefinition(
                name=net_name,
                external_name=str(net['name']) if net.get('name') else None,
                driver=net.get('driver', 'bridge'),
                internal=bool(net.get('internal', False)),
            )
        return result

    def _parse_volumes(self, volumes: Any) -> Dict[str, VolumeDefinition]:
        result = {}
        if volumes and not isinstance(volumes, dict):
            raise SchemaError("'volumes' must be a mapping")
        for vol_name, vol in (volumes or {}).items():
            vol = vol or {}
            if not isinstance(vol, dict):
                raise SchemaError(f"Volume '{vol_name}' must be a mapping")
            persistent = vol.get('persistent', True)
            if not isinstance(persistent, bool):
                raise SchemaError(f"Volume '{vol_name}': 'persistent' must be true or false")
            result[vol_name] = VolumeDefinition(
                name=vol_name,
                persistent=persistent,
                external_name=str(vol['name']) if vol.get('name') else None,
            )
        return result

    def _names(self, name: str, field: str, val: Any) -> List[str]:
        # list form or mapping form (keys are the names)
        if val is None:
            return []
        if isinstance(val, dict):
            return [str(k) for k in val.keys()]
        if isinstance(val, list):
            return [str(v) for v in val]
        raise SchemaError(f"Service '{name}': '{field}' must be a list or mapping")

    @staticmethod
    def _split_pair(text: str):
        k, _, v = text.partition('=')
        return k, v

    @staticmethod
    def _seconds(value: Any, default: float) -> float:
        """
        Converts compose durations like '10s', '1m30s' or plain numbers to seconds.
        """
        if value is None:
            return default
        if isinstance(value, (int, float)):
            return float(value)
        total, number = 0.0, ''
        units = {'h': 3600, 'm': 60, 's': 1}
        text = str(value).strip()
        i = 0
        while i < len(text):
            ch = text[i]
            if ch.isdigit() or ch == '.':
                number += ch
            elif text.startswith('ms', i):
                total += float(number or 0) / 1000
                number = ''
                i += 1
            elif ch in units:
                total += float(number or 0) * units[ch]
                number = ''
            else:
                raise SchemaError(f"Invalid duration '{value}'")
            i += 1
        if number:
            total += float(number)
        return total

    def _to_list(self, val: Any) -> List[str]:
        """
        Helper to ensure a value is a list of strings.

        :param val: The value to convert.
        :return: A list of strings.
        """
        if val is None:
            return []
        if isinstance(val, str):
            return shlex.split(val)
        return [str(v) for v in val]
