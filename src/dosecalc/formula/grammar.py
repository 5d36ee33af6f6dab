"""Lark grammar definition for DoseCalc formulas.

The grammar is a pure arithmetic DSL:
- Arithmetic: +, -, *, /, %, ^ (power, right-associative)
- Unary minus (binds looser than ^, so -2^2 is -4)
- Variable paths: weight, patient.weight, values[0], data.items[1].dose
- Function calls: min(a, b), convert(weight, "kg", "lb")
- Literals: numbers, strings (unit names)

There is no assignment, comparison, control flow or attribute call syntax.
"""

# Lark grammar for formula parsing
FORMULA_GRAMMAR = r"""
    ?start: expression

    ?expression: additive

    ?additive: multiplicative
        | additive "+" multiplicative -> add
        | additive "-" multiplicative -> sub

    ?multiplicative: unary
        | multiplicative "*" unary -> mul
        | multiplicative "/" unary -> div
        | multiplicative "%" unary -> mod

    ?unary: power
        | "-" unary -> neg

    ?power: atom
        | atom "^" unary -> pow

    ?atom: NUMBER -> number
        | STRING -> string
        | function_call
        | VARIABLE -> variable
        | "(" expression ")"

    function_call: VARIABLE "(" [arguments] ")"

    arguments: expression ("," expression)*

    // Identifier optionally followed by .property / [index] segments.
    // Negative indices parse and resolve to nothing.
    VARIABLE: /[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*|\[-?\d+\])*/

    // String literals (single or double quotes)
    STRING: /"[^"]*"/ | /'[^']*'/

    // Number literals (integer or decimal, with optional scientific notation)
    // Note: negative sign is handled by unary operator, not here
    NUMBER: /(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?/

    %import common.WS
    %ignore WS
"""
