"""
Two-pass CHIP-8 assembler.

Assembles mnemonic source text into a raw ROM image ready for load_rom.

Syntax:
  - one statement per line, ';' starts a comment
  - optional 'label:' prefix; a label alone on a line binds to the next statement
  - mnemonics and register names are case-insensitive, labels are not
  - numbers in decimal, 0x hex or 0b binary
  - 'byte v1, v2, ...' emits raw bytes

How the two passes work:
  Pass 1: Assign every label the address of the statement it precedes.
          Instructions are always 2 bytes, a byte line is one byte per value.
  Pass 2: Encode each statement now that all labels are known.

Errors from both passes are collected line by line and raised together, so
a failed assembly never produces partial output.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from chipax.constants import PROGRAM_START, ADDRESS_MASK
from chipax.errors import AssemblerError

__all__ = ['Assembler', 'AssemblerError', 'INSTRUCTION_FORMS', 'assemble', 'encode_template']


# Operand kinds
VX = 'VX'       # register placed in the x nibble
VY = 'VY'       # register placed in the y nibble
ADDR = 'ADDR'   # 12-bit address or label
BYTE = 'BYTE'   # 8-bit immediate
NIB = 'NIB'     # 4-bit immediate

VALUE_LIMITS = {ADDR: 0xFFF, BYTE: 0xFF, NIB: 0xF}

# Operands that are spelled literally, never parsed as values
KEYWORDS = frozenset({'v0', 'i', 'dt', 'st', 'k', 'f', 'b', '[i]'})

# (mnemonic, operand kinds, opcode template)
# Template letters: x/y take register numbers, nnn/kk/n take values. A letter
# repeated in one template must decode to the same value.
INSTRUCTION_FORMS: List[Tuple[str, Tuple[str, ...], str]] = [
    ('cls',  (),                 '00E0'),
    ('ret',  (),                 '00EE'),
    ('jp',   (ADDR,),            '1nnn'),
    ('jp',   ('v0', ADDR),       'Bnnn'),
    ('call', (ADDR,),            '2nnn'),
    ('se',   (VX, BYTE),         '3xkk'),
    ('sne',  (VX, BYTE),         '4xkk'),
    ('se',   (VX, VY),           '5xy0'),
    ('sne',  (VX, VY),           '9xy0'),
    ('ld',   (VX, BYTE),         '6xkk'),
    ('add',  (VX, BYTE),         '7xkk'),
    ('ld',   (VX, VY),           '8xy0'),
    ('or',   (VX, VY),           '8xy1'),
    ('and',  (VX, VY),           '8xy2'),
    ('xor',  (VX, VY),           '8xy3'),
    ('add',  (VX, VY),           '8xy4'),
    ('sub',  (VX, VY),           '8xy5'),
    ('shr',  (VX,),              '8xx6'),
    ('shr',  (VX, VY),           '8xy6'),
    ('subn', (VX, VY),           '8xy7'),
    ('shl',  (VX,),              '8xxE'),
    ('shl',  (VX, VY),           '8xyE'),
    ('ld',   ('i', ADDR),        'Annn'),
    ('rnd',  (VX, BYTE),         'Cxkk'),
    ('drw',  (VX, VY, NIB),      'Dxyn'),
    ('skp',  (VX,),              'Ex9E'),
    ('sknp', (VX,),              'ExA1'),
    ('ld',   (VX, 'dt'),         'Fx07'),
    ('ld',   (VX, 'k'),          'Fx0A'),
    ('ld',   ('dt', VX),         'Fx15'),
    ('ld',   ('st', VX),         'Fx18'),
    ('add',  ('i', VX),          'Fx1E'),
    ('ld',   ('f', VX),          'Fx29'),
    ('ld',   ('b', VX),          'Fx33'),
    ('ld',   ('[i]', VX),        'Fx55'),
    ('ld',   (VX, '[i]'),        'Fx65'),
]

MNEMONICS = frozenset(form[0] for form in INSTRUCTION_FORMS)

_REGISTER_RE = re.compile(r'^v([0-9a-f])$', re.IGNORECASE)
_LABEL_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def encode_template(template: str, fields: Dict[str, int]) -> int:
    """Fill an opcode template such as '8xy4' or 'Dxyn' with field values."""
    digits = []
    i = 0
    while i < len(template):
        ch = template[i]
        if ch in 'xy':
            digits.append(f"{fields[ch] & 0xF:X}")
            i += 1
        elif ch in 'nk':
            run = len(template[i:]) - len(template[i:].lstrip(ch))
            digits.append(f"{fields[ch] & ((1 << (4 * run)) - 1):0{run}X}")
            i += run
        else:
            digits.append(ch)
            i += 1
    return int(''.join(digits), 16)


@dataclass
class AsmLine:
    """Parsed assembly source line."""
    labels: List[str] = field(default_factory=list)
    mnemonic: Optional[str] = None
    operands: List[str] = field(default_factory=list)
    line_num: int = 0
    raw: str = ""


def _parse_line(line: str, line_num: int) -> AsmLine:
    """Split one line into labels, mnemonic and operands."""
    result = AsmLine(line_num=line_num, raw=line)

    text = line.split(';', 1)[0].strip()

    while text:
        head, sep, rest = text.partition(':')
        if not sep or not _LABEL_RE.match(head.strip()):
            break
        result.labels.append(head.strip())
        text = rest.strip()

    if not text:
        return result

    parts = text.split(None, 1)
    result.mnemonic = parts[0].lower()
    if len(parts) > 1:
        result.operands = [op.strip() for op in parts[1].split(',')]
    return result


def _register(text: str) -> Optional[int]:
    match = _REGISTER_RE.match(text)
    return int(match.group(1), 16) if match else None


def _parse_value(text: str, symbols: Dict[str, int], line_num: int) -> int:
    """Parse a numeric literal or label reference.
    Supports: 0xFF (hex), 0b1010 (binary), 123 (decimal), LABEL
    """
    lowered = text.lower()
    try:
        if lowered.startswith('0x'):
            return int(text[2:], 16)
        if lowered.startswith('0b'):
            return int(text[2:], 2)
        if text.isdigit():
            return int(text)
    except ValueError:
        raise AssemblerError(f"Bad number: '{text}'", line_num) from None

    if text[:1].isdigit():
        raise AssemblerError(f"Bad number: '{text}'", line_num)
    if text in symbols:
        return symbols[text]
    raise AssemblerError(f"Undefined label: '{text}'", line_num)


def _operand_matches(kind: str, text: str) -> bool:
    """Check whether an operand token can fill a slot of the given kind."""
    lowered = text.lower()
    if kind in (VX, VY):
        return _register(text) is not None
    if kind in VALUE_LIMITS:
        return bool(text) and lowered not in KEYWORDS and _register(text) is None
    return lowered == kind


def _find_form(mnemonic: str, operands: List[str]) -> Optional[Tuple[Tuple[str, ...], str]]:
    for name, kinds, template in INSTRUCTION_FORMS:
        if name != mnemonic or len(kinds) != len(operands):
            continue
        if all(_operand_matches(kind, op) for kind, op in zip(kinds, operands)):
            return kinds, template
    return None


class Assembler:
    """Two-pass CHIP-8 assembler.

    Usage:
        asm = Assembler(base=0x200)
        rom = asm.assemble(source_text)
    """

    def __init__(self, base: int = PROGRAM_START):
        self.base = base
        self.symbols: Dict[str, int] = {}
        self.errors: List[AssemblerError] = []
        self.binary = bytearray()
        self._lines: List[AsmLine] = []

    def assemble(self, source: str) -> bytes:
        """Assemble source text into a ROM image.

        Raises:
            AssemblerError: listing every failing line when anything is wrong
        """
        self.symbols = {}
        self.errors = []
        self.binary = bytearray()
        self._lines = [_parse_line(line, i) for i, line in enumerate(source.splitlines(), 1)]

        self._pass1()
        self._pass2()

        if len(self.errors) == 1:
            raise self.errors[0]
        if self.errors:
            raise AssemblerError(
                f"{len(self.errors)} errors:\n" + "\n".join(str(e) for e in self.errors),
                errors=self.errors,
            )

        return bytes(self.binary)

    def _pass1(self):
        """Pass 1: assign label addresses."""
        offset = 0

        for line in self._lines:
            for label in line.labels:
                if label in self.symbols:
                    self.errors.append(AssemblerError(f"Duplicate label: '{label}'", line.line_num))
                else:
                    self.symbols[label] = (self.base + offset) & ADDRESS_MASK

            if line.mnemonic is None:
                continue
            if line.mnemonic == 'byte':
                offset += len(line.operands)
            else:
                offset += 2

    def _pass2(self):
        """Pass 2: encode every statement."""
        for line in self._lines:
            if line.mnemonic is None:
                continue
            try:
                self.binary.extend(self._encode_line(line))
            except AssemblerError as e:
                self.errors.append(e)

    def _encode_line(self, line: AsmLine) -> bytes:
        if line.mnemonic == 'byte':
            if not line.operands or not all(line.operands):
                raise AssemblerError("byte needs at least one value", line.line_num)
            return bytes(self._value(op, BYTE, line.line_num) for op in line.operands)

        if line.mnemonic not in MNEMONICS:
            raise AssemblerError(f"Unknown mnemonic: '{line.mnemonic}'", line.line_num)

        form = _find_form(line.mnemonic, line.operands)
        if form is None:
            raise AssemblerError(
                f"No form of '{line.mnemonic}' takes operands '{', '.join(line.operands)}'",
                line.line_num,
            )

        kinds, template = form
        fields = {}
        for kind, op in zip(kinds, line.operands):
            if kind == VX:
                fields['x'] = _register(op)
            elif kind == VY:
                fields['y'] = _register(op)
            elif kind == ADDR:
                fields['n'] = self._value(op, ADDR, line.line_num)
            elif kind == BYTE:
                fields['k'] = self._value(op, BYTE, line.line_num)
            elif kind == NIB:
                fields['n'] = self._value(op, NIB, line.line_num)

        opcode = encode_template(template, fields)
        return bytes([opcode >> 8, opcode & 0xFF])

    def _value(self, text: str, kind: str, line_num: int) -> int:
        value = _parse_value(text, self.symbols, line_num)
        if not 0 <= value <= VALUE_LIMITS[kind]:
            raise AssemblerError(
                f"Value {text} out of range (0-0x{VALUE_LIMITS[kind]:X})", line_num
            )
        return value


def assemble(source: str, base: int = PROGRAM_START) -> bytes:
    """Assemble source text loaded at base into ROM bytes."""
    return Assembler(base).assemble(source)
