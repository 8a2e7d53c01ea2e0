"""Rewrites async JavaScript functions into promise chains."""

# Configuration
from thenify.config import TransformOptions as TransformOptions

# Errors
from thenify.errors import ParseError as ParseError
from thenify.errors import ThenifyError as ThenifyError
from thenify.errors import UnsupportedConstructError as UnsupportedConstructError
from thenify.errors import UnsupportedSyntaxError as UnsupportedSyntaxError

# Passes
from thenify.hoisting import hoist_function as hoist_function
from thenify.inline import inline_program as inline_program

# Tree model
from thenify.nodes import Node as Node
from thenify.nodes import Program as Program
from thenify.nodes import emit as emit

# Parsing
from thenify.parser import parse as parse

# Scope
from thenify.scope import Scope as Scope
from thenify.scope import UidRegistry as UidRegistry

# Entry points
from thenify.transform import transform_program as transform_program
from thenify.transform import transform_source as transform_source
