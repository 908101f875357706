"""Code generation from flow documents."""

from flow_editor.codegen.python_generator import compile_flow, generate_python_code

__all__ = ["compile_flow", "generate_python_code"]
