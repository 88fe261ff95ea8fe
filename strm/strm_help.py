"""
Help text for `?ident` queries, rendered from each filter's docstring and
examples with a Mustache template.
"""
import inspect

import pystache

HELP_TEMPLATE = """\
{{#usages}}
{{usage}}
{{/usages}}

{{description}}
{{#has_examples}}

Examples:
{{#examples}}
  {{input}}
    => {{output}}
{{/examples}}
{{/has_examples}}
{{#has_aliases}}

Aliases: {{aliases}}
{{/has_aliases}}
"""


def usage(record, name: str) -> str:
    """Call shape of a filter, e.g. `source.take(...)`."""
    if record.req_source is True:
        prefix = 'source.'
    elif record.req_source is None:
        prefix = '[source.]'
    else:
        prefix = ''
    if record.num_arg == 0 or record.max_arg == 0:
        args = ''
    elif record.num_arg is not None:
        args = '(' + ','.join(f'arg{i + 1}' for i in range(record.num_arg)) + ')'
    else:
        args = '(...)'
    return prefix + name + args


def help_context(record) -> dict:
    name = record.names[0]
    examples = [{'input': i, 'output': o if o is not None else '(error)'} for i, o in record.examples]
    return {
        'usages': [{'usage': usage(record, name)}],
        'description': inspect.getdoc(type(record)) or '(no description)',
        'has_examples': bool(examples),
        'examples': examples,
        'has_aliases': len(record.names) > 1,
        'aliases': ', '.join(record.names[1:]),
    }


def format_help(record) -> str:
    renderer = pystache.Renderer(escape=lambda u: u)
    return renderer.render(HELP_TEMPLATE, help_context(record)).rstrip('\n')


def help_index(registry) -> str:
    """Every built-in under its first name that is not internal syntax."""
    names = set()
    for rec in registry.bindings.values():
        public = [n for n in rec.names if not n.startswith("#")]
        if public:
            names.add(public[0])
    names = sorted(names)
    return 'Available filters: ' + ', '.join(names) + '\nUse ?name for details.'
