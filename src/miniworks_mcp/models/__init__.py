"""Data models for programs, global settings, and the All Dump configuration."""

from .configuration import MachineConfiguration
from .parameters import Parameter, ParameterSet, default_parameters
from .system import GlobalSettings
