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

"""
Module containing tools for loading interval configuration from YAML files.

Configs are described as ``dataclass``\\es. ``IntervalConfig`` describes a single interval, and can be used on its
own or as a field in a larger config class:

.. code-block:: python

    @dataclass
    class MyConfig:
        poll: IntervalConfig
        logging: LoggingConfig

A matching YAML file:

.. code-block:: yaml

    poll:
        duration:
            type: jittered
            initial: 500ms
            max: 30s
            jitter-factor: 0.2
        start: immediate
    logging:
        console:
            level: INFO

You can then load a YAML file into this dataclass with the `load_yaml` function, and create the interval from it:

.. code-block:: python

    with open("config.yaml") as infile:
        config: MyConfig = load_yaml(infile, MyConfig)

    config.logging.setup_logging()
    interval = config.poll.create_interval(work=check_source)
"""

from intervalutils.exceptions import InvalidConfigError

from .elements import (
    DurationConfig,
    DurationType,
    IntervalConfig,
    LoggingConfig,
    StepConfig,
    TimeIntervalConfig,
)
from .loaders import load_yaml, load_yaml_dict

__all__ = [
    "DurationConfig",
    "DurationType",
    "IntervalConfig",
    "InvalidConfigError",
    "LoggingConfig",
    "StepConfig",
    "TimeIntervalConfig",
    "load_yaml",
    "load_yaml_dict",
]
