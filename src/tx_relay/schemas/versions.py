from enum import Enum


class JsonRpcVersion(Enum):
    Version2_0 = "2.0"
