"""AST-based Python code generation for resource types, controllers and clients."""

from __future__ import annotations

import ast
import builtins
from collections.abc import Iterable, Mapping, Sequence
import keyword
import textwrap
from typing import Any, Optional

from pydantic import BaseModel

from .model_types import Field, Schema, SchemaProjection
from .naming import constant_name, sanitize_identifier, to_snake_case, type_module_name

_TYPING_IMPORT_ORDER: tuple[str, ...] = (
    "Any",
    "Optional",
)

_PYDANTIC_IMPORT_ORDER: tuple[str, ...] = (
    "BaseModel",
    "ConfigDict",
    "Field",
)

_BASEMODEL_RESERVED = set(dir(BaseModel))
_BUILTIN_NAMES = set(dir(builtins))


class RenderError(ValueError):
    """Raised when a module cannot be rendered from its context."""


def render_type_module(
    *,
    schema: Schema,
    projection: SchemaProjection,
    type_modules: Mapping[str, str],
) -> str:
    """Render the public type module for one schema.

    Args:
        schema (Schema): Schema being rendered.
        projection (SchemaProjection): Resolved fields and actions of ``schema``.
        type_modules (Mapping[str, str]): Generated type module name per schema id,
            used to import referenced types from sibling modules.

    Returns:
        str: Generated Python source code.
    """
    model_name = _class_identifier(schema.code_name)
    collection_name = f"{model_name}Collection"
    client_name = f"{model_name}Client"
    local_names = {model_name, collection_name, client_name}

    body: list[ast.stmt] = [_constant_assign(f"{constant_name(schema.id)}_TYPE", schema.id)]
    body.extend(_field_constants(schema))
    body.append(_model_class(model_name, schema=schema, projection=projection))
    body.append(_list_model_class(collection_name, item_name=model_name, attribute="data"))
    body.append(
        _client_class(
            client_name,
            schema=schema,
            projection=projection,
            model_name=model_name,
            collection_name=collection_name,
        )
    )

    imported = _referenced_imports(
        schema=schema,
        referenced=[
            *projection.referenced_schemas,
            *projection.action_outputs.values(),
            *projection.action_inputs.values(),
        ],
        type_modules=type_modules,
        local_names=local_names,
        module_prefix=".",
    )
    docstring = (
        f'Generated resource type for schema "{schema.id}" ({schema.version}).\n\n'
        "Do not edit; regenerate instead."
    )
    # Sibling imports go after the classes; type modules may import each other.
    return _render_module(docstring=docstring, body=body, trailing_imports=imported)


def render_controller_module(
    *,
    schema: Schema,
    projection: SchemaProjection,
    type_modules: Mapping[str, str],
    types_package: str,
) -> str:
    """Render the controller module for one schema.

    ``schema`` is expected to already be the internal variant when one exists.

    Args:
        schema (Schema): Schema whose shape the controller manages.
        projection (SchemaProjection): Resolved fields and actions of ``schema``.
        type_modules (Mapping[str, str]): Generated type module name per schema id.
        types_package (str): Dotted import path of the generated type package.

    Returns:
        str: Generated Python source code.
    """
    model_name = _class_identifier(schema.code_name)
    list_name = f"{model_name}List"
    handler_name = f"{model_name}HandlerFunc"
    controller_name = f"{model_name}Controller"
    local_names = {model_name, list_name, handler_name, controller_name}
    prefix = constant_name(schema.id)

    body: list[ast.stmt] = [
        _constant_assign(f"{prefix}_RESOURCE_NAME", schema.id),
        _constant_assign(f"{prefix}_ACTIONS", tuple(projection.resource_actions)),
        _model_class(model_name, schema=schema, projection=projection),
        _list_model_class(list_name, item_name=model_name, attribute="items"),
        _statement(f"{handler_name} = Callable[[str, Optional[{model_name}]], Optional[{model_name}]]"),
        _class_from_source(
            f'''
            class {controller_name}:
                """Dispatch ``{schema.id}`` changes to named handlers in registration order."""

                def __init__(self) -> None:
                    self._handlers: dict[str, {handler_name}] = {{}}

                def add_handler(self, name: str, handler: {handler_name}) -> None:
                    if name in self._handlers:
                        raise ValueError(f"Handler {{name!r}} is already registered")
                    self._handlers[name] = handler

                def handler_names(self) -> tuple[str, ...]:
                    return tuple(self._handlers)

                def sync(self, key: str, obj: Optional[{model_name}]) -> Optional[{model_name}]:
                    for handler in self._handlers.values():
                        result = handler(key, obj)
                        if result is not None:
                            obj = result
                    return obj
            '''
        ),
    ]

    imported = _referenced_imports(
        schema=schema,
        referenced=projection.referenced_schemas,
        type_modules=type_modules,
        local_names=local_names,
        module_prefix=f"{types_package}.",
    )
    docstring = (
        f'Generated controller for schema "{schema.id}" ({schema.version}).\n\n'
        "Do not edit; regenerate instead."
    )
    extra: list[ast.stmt] = [
        ast.ImportFrom(module="collections.abc", names=[ast.alias(name="Callable")], level=0)
    ]
    extra.extend(imported)
    return _render_module(docstring=docstring, body=body, extra_imports=extra)


def render_client_module(schemas: Sequence[Schema]) -> str:
    """Render the aggregate client module for every generated schema.

    Args:
        schemas (Sequence[Schema]): Generated schemas in generation order.

    Returns:
        str: Generated Python source code.
    """
    imports: list[ast.stmt] = []
    assignments: list[str] = []
    attributes: dict[str, str] = {"api_client": "<api client>"}
    for schema in schemas:
        client_name = f"{_class_identifier(schema.code_name)}Client"
        attribute = sanitize_identifier(to_snake_case(schema.code_name))
        if attribute in attributes:
            raise RenderError(
                f"Client attribute {attribute!r} for schema {schema.id!r} clashes with "
                f"{attributes[attribute]!r}"
            )
        attributes[attribute] = schema.id
        imports.append(
            ast.ImportFrom(
                module=type_module_name(schema.id),
                names=[ast.alias(name=client_name)],
                level=1,
            )
        )
        assignments.append(f"self.{attribute} = {client_name}(api_client)")

    init_body = "\n".join(
        ["self.api_client = api_client", *assignments],
    )
    body: list[ast.stmt] = [
        _constant_assign("SCHEMA_TYPES", tuple(schema.id for schema in schemas)),
        _class_from_source(
            f'''
            class Client:
                """Typed clients for every generated resource type."""

                def __init__(self, api_client: Any) -> None:
{textwrap.indent(init_body, " " * 20)}
            '''
        ),
    ]
    docstring = (
        "Generated aggregate client.\n\n"
        "``api_client`` must provide ``list``, ``create``, ``update``, ``by_id``, "
        "``delete`` and ``action``.\n\n"
        "Do not edit; regenerate instead."
    )
    return _render_module(docstring=docstring, body=body, extra_imports=imports)


def field_attribute_name(code_name: str) -> str:
    """Return the model attribute used for a field code name."""
    name = sanitize_identifier(code_name, lowercase=False)
    if name in _BASEMODEL_RESERVED or name in _BUILTIN_NAMES or name.startswith("model_"):
        name = f"{name}_"
    return name


def _render_module(
    *,
    docstring: str,
    body: list[ast.stmt],
    extra_imports: Iterable[ast.stmt] = (),
    trailing_imports: Sequence[ast.stmt] = (),
) -> str:
    used_names = _collect_loaded_names(body)
    imports: list[ast.stmt] = [
        ast.ImportFrom(module="__future__", names=[ast.alias(name="annotations")], level=0),
    ]
    typing_imports = [name for name in _TYPING_IMPORT_ORDER if name in used_names]
    if typing_imports:
        imports.append(
            ast.ImportFrom(
                module="typing",
                names=[ast.alias(name=name) for name in typing_imports],
                level=0,
            )
        )
    pydantic_imports = [name for name in _PYDANTIC_IMPORT_ORDER if name in used_names]
    if pydantic_imports:
        imports.append(
            ast.ImportFrom(
                module="pydantic",
                names=[ast.alias(name=name) for name in pydantic_imports],
                level=0,
            )
        )
    imports.extend(extra_imports)
    _check_bound_names(body, imports=[*imports, *trailing_imports], used_names=used_names)

    module = ast.Module(
        body=[ast.Expr(value=ast.Constant(value=docstring)), *imports, *body, *trailing_imports],
        type_ignores=[],
    )
    ast.fix_missing_locations(module)
    return ast.unparse(module) + "\n"


def _check_bound_names(
    body: Iterable[ast.stmt],
    *,
    imports: Iterable[ast.stmt],
    used_names: set[str],
) -> None:
    """Reject module-level names that shadow an import, a used builtin or each other."""
    bound: list[str] = []
    for statement in imports:
        if isinstance(statement, ast.ImportFrom):
            bound.extend(alias.asname or alias.name for alias in statement.names)
    imported = set(bound)
    for statement in body:
        if isinstance(statement, ast.ClassDef):
            bound.append(statement.name)
        elif isinstance(statement, ast.Assign):
            bound.extend(
                target.id for target in statement.targets if isinstance(target, ast.Name)
            )

    clashes = {name for name in bound if bound.count(name) > 1}
    clashes.update(
        name for name in bound if name not in imported and name in used_names & _BUILTIN_NAMES
    )
    if clashes:
        raise RenderError(
            f"Generated names clash with imported or builtin names: {', '.join(sorted(clashes))}"
        )


def _field_constants(schema: Schema) -> list[ast.stmt]:
    prefix = constant_name(schema.id)
    statements: list[ast.stmt] = []
    owners: dict[str, str] = {}
    for field in schema.resource_fields:
        name = f"{prefix}_FIELD_{constant_name(field.code_name)}"
        previous = owners.get(name)
        if previous is not None:
            raise RenderError(
                f"Fields {previous!r} and {field.code_name!r} of schema {schema.id!r} "
                f"share constant {name!r}"
            )
        owners[name] = field.code_name
        statements.append(_constant_assign(name, field.name))
    return statements


def _model_class(name: str, *, schema: Schema, projection: SchemaProjection) -> ast.ClassDef:
    class_body: list[ast.stmt] = [
        ast.Expr(value=ast.Constant(value=f"Resource ``{schema.id}``.")),
        _model_config(),
    ]
    used_attributes: set[str] = set()
    for field in schema.resource_fields:
        attribute = field_attribute_name(field.code_name)
        if attribute in used_attributes:
            raise RenderError(f"Duplicate attribute {attribute!r} in schema {schema.id!r}")
        used_attributes.add(attribute)
        annotation = projection.field_types.get(field.code_name)
        if annotation is None:
            raise RenderError(f"No resolved type for field {field.code_name!r} of {schema.id!r}")
        class_body.append(_field_to_ast(attribute, field=field, annotation=annotation))

    return ast.ClassDef(
        name=name,
        bases=[ast.Name(id="BaseModel", ctx=ast.Load())],
        keywords=[],
        body=class_body,
        decorator_list=[],
        type_params=[],
    )


def _list_model_class(name: str, *, item_name: str, attribute: str) -> ast.ClassDef:
    return ast.ClassDef(
        name=name,
        bases=[ast.Name(id="BaseModel", ctx=ast.Load())],
        keywords=[],
        body=[
            _model_config(),
            ast.AnnAssign(
                target=ast.Name(id=attribute, ctx=ast.Store()),
                annotation=_expr(f"list[{item_name}]"),
                value=ast.Call(
                    func=ast.Name(id="Field", ctx=ast.Load()),
                    args=[],
                    keywords=[
                        ast.keyword(arg="default_factory", value=ast.Name(id="list", ctx=ast.Load()))
                    ],
                ),
                simple=1,
            ),
        ],
        decorator_list=[],
        type_params=[],
    )


def _model_config() -> ast.Assign:
    return ast.Assign(
        targets=[ast.Name(id="model_config", ctx=ast.Store())],
        value=ast.Call(
            func=ast.Name(id="ConfigDict", ctx=ast.Load()),
            args=[],
            keywords=[
                ast.keyword(arg="populate_by_name", value=ast.Constant(value=True)),
                ast.keyword(arg="extra", value=ast.Constant(value="allow")),
            ],
        ),
    )


def _field_to_ast(attribute: str, *, field: Field, annotation: str) -> ast.AnnAssign:
    keywords: list[ast.keyword] = []
    if field.name != attribute:
        keywords.append(ast.keyword(arg="alias", value=ast.Constant(value=field.name)))

    if field.required and field.default is None:
        default_value: ast.expr = ast.Constant(value=Ellipsis)
    else:
        default_value = _value_expr(field.default)

    return ast.AnnAssign(
        target=ast.Name(id=attribute, ctx=ast.Store()),
        annotation=_expr(annotation),
        value=ast.Call(
            func=ast.Name(id="Field", ctx=ast.Load()),
            args=[default_value],
            keywords=keywords,
        ),
        simple=1,
    )


def _client_class(
    name: str,
    *,
    schema: Schema,
    projection: SchemaProjection,
    model_name: str,
    collection_name: str,
) -> ast.ClassDef:
    type_constant = f"{constant_name(schema.id)}_TYPE"
    dump = "by_alias=True, exclude_none=True"
    methods: list[str] = []
    if schema.supports_collection_method("GET"):
        methods.append(
            f'''
            def list(self, opts: Optional[dict[str, Any]] = None) -> {collection_name}:
                return {collection_name}.model_validate(self._api_client.list({type_constant}, opts))
            '''
        )
    if schema.supports_collection_method("POST"):
        methods.append(
            f'''
            def create(self, resource: {model_name}) -> {model_name}:
                result = self._api_client.create({type_constant}, resource.model_dump({dump}))
                return {model_name}.model_validate(result)
            '''
        )
    if schema.supports_resource_method("PUT"):
        methods.append(
            f'''
            def update(self, existing: {model_name}, updates: dict[str, Any]) -> {model_name}:
                result = self._api_client.update(
                    {type_constant}, existing.model_dump({dump}), updates
                )
                return {model_name}.model_validate(result)
            '''
        )
    if schema.supports_resource_method("GET"):
        methods.append(
            f'''
            def by_id(self, resource_id: str) -> {model_name}:
                return {model_name}.model_validate(self._api_client.by_id({type_constant}, resource_id))
            '''
        )
    if schema.supports_resource_method("DELETE"):
        methods.append(
            f'''
            def delete(self, resource: {model_name}) -> None:
                self._api_client.delete({type_constant}, resource.model_dump({dump}))
            '''
        )

    used_methods = {"list", "create", "update", "by_id", "delete"}
    for action_name, action in projection.resource_actions.items():
        method_name = f"action_{sanitize_identifier(to_snake_case(action_name))}"
        if method_name in used_methods:
            raise RenderError(f"Duplicate action method {method_name!r} in schema {schema.id!r}")
        used_methods.add(method_name)
        output_name = _class_identifier(projection.action_outputs[action_name].code_name)
        input_schema = projection.action_inputs.get(action_name)
        if input_schema is None:
            payload_type = "dict[str, Any]"
            payload = "payload"
        else:
            payload_type = _class_identifier(input_schema.code_name)
            payload = f"None if payload is None else payload.model_dump({dump})"
        methods.append(
            f'''
            def {method_name}(
                self, resource: {model_name}, payload: Optional[{payload_type}] = None
            ) -> {output_name}:
                """Run the ``{action.name}`` action."""
                result = self._api_client.action(
                    {type_constant}, {action.name!r}, resource.model_dump({dump}), {payload}
                )
                return {output_name}.model_validate(result)
            '''
        )

    class_def = _class_from_source(
        f'''
        class {name}:
            """Typed operations for ``{schema.id}`` resources."""

            def __init__(self, api_client: Any) -> None:
                self._api_client = api_client
        '''
    )
    for method_source in methods:
        class_def.body.append(_class_member_from_source(method_source))
    return class_def


def _referenced_imports(
    *,
    schema: Schema,
    referenced: Iterable[Schema],
    type_modules: Mapping[str, str],
    local_names: set[str],
    module_prefix: str,
) -> list[ast.stmt]:
    imported: dict[str, str] = {}
    for other in referenced:
        module = type_modules.get(other.id)
        if module is None:
            continue
        if (other.version, other.id) == (schema.version, schema.id):
            continue
        other_name = _class_identifier(other.code_name)
        if other_name in local_names:
            raise RenderError(
                f"Schema {schema.id!r} references {other.id!r}, whose class {other_name!r} "
                "clashes with a class defined in the same module"
            )
        previous = imported.get(other_name)
        if previous is not None and previous != module:
            raise RenderError(
                f"Schema {schema.id!r} references {other_name!r} from both "
                f"{previous!r} and {module!r}"
            )
        imported[other_name] = module

    by_module: dict[str, list[str]] = {}
    for other_name, module in imported.items():
        by_module.setdefault(module, []).append(other_name)

    statements: list[ast.stmt] = []
    for module in sorted(by_module):
        names = sorted(by_module[module])
        if module_prefix == ".":
            statements.append(
                ast.ImportFrom(
                    module=module, names=[ast.alias(name=name) for name in names], level=1
                )
            )
        else:
            statements.append(
                ast.ImportFrom(
                    module=f"{module_prefix}{module}",
                    names=[ast.alias(name=name) for name in names],
                    level=0,
                )
            )
    return statements


def _class_identifier(name: str) -> str:
    if not name.isidentifier() or keyword.iskeyword(name):
        raise RenderError(f"Invalid class name {name!r}")
    return name


def _constant_assign(name: str, value: Any) -> ast.Assign:
    return ast.Assign(
        targets=[ast.Name(id=name, ctx=ast.Store())],
        value=_value_expr(value),
    )


def _class_from_source(source: str) -> ast.ClassDef:
    node = _statement(textwrap.dedent(source))
    if not isinstance(node, ast.ClassDef):
        raise RenderError(f"Expected a class definition, got {type(node).__name__}")
    return node


def _class_member_from_source(source: str) -> ast.stmt:
    return _statement(textwrap.dedent(source))


def _statement(code: str) -> ast.stmt:
    try:
        parsed = ast.parse(code.strip("\n"))
    except SyntaxError as exc:
        raise RenderError(f"Generated code does not parse: {exc}") from exc
    if len(parsed.body) != 1:
        raise RenderError(f"Expected one statement, got {len(parsed.body)}")
    return parsed.body[0]


def _expr(code: str) -> ast.expr:
    try:
        parsed = ast.parse(code, mode="eval")
    except SyntaxError as exc:
        raise RenderError(f"Invalid annotation {code!r}: {exc}") from exc
    return parsed.body


def _value_expr(value: Optional[Any]) -> ast.expr:
    try:
        parsed = ast.parse(repr(value), mode="eval")
    except SyntaxError as exc:
        raise RenderError(f"Value {value!r} has no literal form") from exc
    return parsed.body


def _collect_loaded_names(body: Iterable[ast.stmt]) -> set[str]:
    loaded_names: set[str] = set()
    for statement in body:
        for node in ast.walk(statement):
            if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
                loaded_names.add(node.id)
    return loaded_names
