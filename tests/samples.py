# flake8: noqa
"""Payloads LDT de ejemplo compartidos por los tests."""

# 10 registros validos + 1 linea basura
LINES_SAMPLE = "\r\n".join(
    [
        "0188000921801.00",
        "0180201793860200",
        "0180212772720053",
        "01782003101Bohr",
        "01882003102Niels",
        "0218200310319850107",
        "01482003110M",
        "01584007260HB",
        "0178400726213.5",
        "01685009218EOF",
        "hello world",
    ]
)

WRAPPED_SAMPLE = (
    "<root><column1>0180201793860200</column1>"
    "<column1>0180212772720053</column1>"
    "<column1>01782003101Bohr</column1>"
    "<column1></column1>"
    "<column1>garbage</column1></root>"
)

GARBAGE_ONLY = "this is not ldt\r\nneither is this"

FACILITY = "793860200"
PRACTITIONER = "7727200"
