"""
Module containing functions for loading configuration files.
"""
#  Copyright 2024 Cognite AS
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

import logging
import os
import re
from collections.abc import Iterable
from enum import Enum
from typing import Any, TextIO, TypeVar

import dacite
import yaml
from yaml.scanner import ScannerError

from intervalutils.configtools._util import _to_snake_case
from intervalutils.configtools.elements import TimeIntervalConfig
from intervalutils.exceptions import InvalidConfigError

_logger = logging.getLogger(__name__)


CustomConfigClass = TypeVar("CustomConfigClass")


class _EnvLoader(yaml.SafeLoader):
    pass


def _env_constructor(_: yaml.SafeLoader, node: yaml.Node) -> Any:
    bool_values = {
        "true": True,
        "false": False,
    }
    expanded_value = os.path.expandvars(node.value)
    return bool_values.get(expanded_value.lower(), expanded_value)


_EnvLoader.add_implicit_resolver("!env", re.compile(r"\$\{([^}^{]+)\}"), None)
_EnvLoader.add_constructor("!env", _env_constructor)


def _load_yaml_dict_raw(source: TextIO | str, expand_envvars: bool = True) -> dict[str, Any]:
    loader = _EnvLoader if expand_envvars else yaml.SafeLoader

    try:
        config_dict = yaml.load(source, Loader=loader)  # noqa: S506
    except ScannerError as e:
        location = e.problem_mark or e.context_mark
        formatted_location = (
            f" at line {location.line + 1}, column {location.column + 1}" if location is not None else ""
        )
        cause = e.problem or e.context
        raise InvalidConfigError(f"Invalid YAML{formatted_location}: {cause or ''}") from e

    if not isinstance(config_dict, dict):
        raise InvalidConfigError("The root node of the YAML document must be an object")

    return config_dict


def load_yaml_dict(source: TextIO | str, case_style: str = "hyphen", expand_envvars: bool = True) -> dict[str, Any]:
    """
    Read a YAML file and return a dictionary from its contents.

    Args:
        source: Input stream (as returned by open(...)) or string containing YAML.
        case_style: Casing convention of config file. Valid options are 'snake', 'hyphen' or 'camel'. Should be
            'hyphen'.
        expand_envvars: Substitute values with the pattern ${VAR} with the content of the environment variable VAR

    Returns:
        A raw dict with the contents of the config file, with snake case keys.

    Raises:
        InvalidConfigError: If the file is not valid YAML, or the root is not an object
    """
    return _to_snake_case(_load_yaml_dict_raw(source, expand_envvars), case_style)


def load_yaml(
    source: TextIO | str,
    config_type: type[CustomConfigClass],
    case_style: str = "hyphen",
    expand_envvars: bool = True,
) -> CustomConfigClass:
    """
    Read a YAML file, and create a config object based on its contents.

    Args:
        source: Input stream (as returned by open(...)) or string containing YAML.
        config_type: Class of config type (i.e. ``IntervalConfig``, or your own dataclass containing one).
        case_style: Casing convention of config file. Valid options are 'snake', 'hyphen' or 'camel'. Should be
            'hyphen'.
        expand_envvars: Substitute values with the pattern ${VAR} with the content of the environment variable VAR

    Returns:
        An initialized config object.

    Raises:
        InvalidConfigError: If any config field is given as an invalid type, is missing or is unknown
    """
    config_dict = load_yaml_dict(source, case_style=case_style, expand_envvars=expand_envvars)

    try:
        config = dacite.from_dict(
            data=config_dict,
            data_class=config_type,
            config=dacite.Config(strict=True, cast=[Enum, TimeIntervalConfig, float]),
        )
    except dacite.UnexpectedDataError as e:
        unknowns = [f'"{k.replace("_", "-") if case_style == "hyphen" else k}"' for k in e.keys]
        raise InvalidConfigError(
            f"Unknown config parameter{'s' if len(unknowns) > 1 else ''} {', '.join(unknowns)}"
        ) from e

    except (dacite.WrongTypeError, dacite.MissingValueError, dacite.UnionMatchError) as e:
        path = (e.field_path.replace("_", "-") if case_style == "hyphen" else e.field_path) if e.field_path else None

        def name(type_: type) -> str:
            return type_.__name__ if hasattr(type_, "__name__") else str(type_)

        def all_types(type_: type) -> Iterable[type]:
            return type_.__args__ if hasattr(type_, "__args__") else [type_]

        if isinstance(e, dacite.WrongTypeError | dacite.UnionMatchError) and e.value is not None:
            got_type = name(type(e.value))
            need_type = ", ".join(name(t) for t in all_types(e.field_type))

            raise InvalidConfigError(
                f'Wrong type for field "{path}" - got "{e.value}" of type {got_type} instead of {need_type}'
            ) from e
        raise InvalidConfigError(f'Missing mandatory field "{path}"') from e

    except ValueError as e:
        # Enum values not matching any member
        raise InvalidConfigError(str(e)) from e

    except dacite.ForwardReferenceError as e:
        raise ValueError(f"Invalid config class: {e!s}") from e

    _logger.debug(f"Loaded config of type {config_type.__name__}")
    return config
