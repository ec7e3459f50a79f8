"""sqlvec core: the template assembly engine.

Architecture Overview:
- fragments.py: Fragment model (Text, Param, Expr*) and parameter kinds
- lexer.py: Template text tokenizer
- expressions.py: Embedded expression compiler and evaluator
- cache.py: Process-wide compiled expression cache
- flatten.py: Expression expansion pass
- parameters.py: Parameter validation and binding
- assembly.py: prepare_sql entry point
- dispatch.py: Command/result dispatch table
"""

from sqlvec.core.assembly import SQLVec, prepare_sql
from sqlvec.core.cache import CacheKey, CacheStats, ExpressionCache, get_expression_cache
from sqlvec.core.dispatch import Command, DispatchTable, ResultShape, get_dispatch_table
from sqlvec.core.expressions import CompiledBlock, CompiledExpression, CompiledValue, evaluate_run
from sqlvec.core.flatten import flatten_template
from sqlvec.core.fragments import ExprClose, ExprOpen, ExprPart, Fragment, Param, ParameterKind, Template, Text
from sqlvec.core.lexer import parse_template
from sqlvec.core.parameters import bind_parameters, quote_identifier, validate_parameters

__all__ = (
    "CacheKey",
    "CacheStats",
    "Command",
    "CompiledBlock",
    "CompiledExpression",
    "CompiledValue",
    "DispatchTable",
    "ExprClose",
    "ExprOpen",
    "ExprPart",
    "ExpressionCache",
    "Fragment",
    "Param",
    "ParameterKind",
    "ResultShape",
    "SQLVec",
    "Template",
    "Text",
    "bind_parameters",
    "evaluate_run",
    "flatten_template",
    "get_dispatch_table",
    "get_expression_cache",
    "parse_template",
    "prepare_sql",
    "quote_identifier",
    "validate_parameters",
)
