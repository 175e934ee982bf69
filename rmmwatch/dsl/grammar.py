DOCUMENT_GRAMMAR = r"""
    start: (header | pair | _NL)*

    header: "[" SECTION_PATH "]" _NL

    pair: KEY "=" value _NL

    value: ML_STRING          -> ml_string
         | STRING             -> string
         | BOOL ("/" BOOL)+   -> options
         | BOOL               -> boolean
         | SIGNED_NUMBER      -> number

    SECTION_PATH: /[^\[\]\s.]+(\.[^\[\]\s.]+)*/
    KEY: /[A-Za-z_][A-Za-z0-9_\-]*/
    BOOL: "true" | "false"

    ML_STRING.2: /"{3}[\s\S]*?"{3}/
    STRING: /"(?:[^"\\\n]|\\.)*"/

    COMMENT: /#[^\n]*/
    _NL: /(\r?\n)+/

    %import common.SIGNED_NUMBER
    %import common.WS_INLINE
    %ignore WS_INLINE
    %ignore COMMENT
"""
