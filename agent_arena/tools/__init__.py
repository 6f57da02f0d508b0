# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from .base_tool import BaseTool
from .dice import RollDiceTool
from .math_tools import AddTool, MultiplyTool, SqrtTool, SubtractTool
from .example import ExampleTool
