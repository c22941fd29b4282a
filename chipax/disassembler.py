"""CHIP-8 disassembler, the inverse of chipax.assembler."""

from typing import Dict, Iterator, Optional, Tuple

from chipax.assembler import INSTRUCTION_FORMS, VX, VY, ADDR, BYTE, NIB
from chipax.constants import PROGRAM_START, ADDRESS_MASK


def match_template(template: str, opcode: int) -> Optional[Dict[str, int]]:
    """Match an opcode against a template like '8xy6', returning its fields or None."""
    digits = f"{opcode & 0xFFFF:04X}"
    fields: Dict[str, int] = {}
    i = 0
    while i < 4:
        ch = template[i]
        if ch in 'xy':
            value = int(digits[i], 16)
            # A repeated letter ('8xx6') must name the same register
            if fields.setdefault(ch, value) != value:
                return None
            i += 1
        elif ch in 'nk':
            run = len(template[i:]) - len(template[i:].lstrip(ch))
            fields[ch] = int(digits[i:i + run], 16)
            i += run
        else:
            if digits[i] != ch:
                return None
            i += 1
    return fields


def _format_operand(kind: str, fields: Dict[str, int]) -> str:
    if kind == VX:
        return f"v{fields['x']:X}"
    if kind == VY:
        return f"v{fields['y']:X}"
    if kind == ADDR:
        return f"0x{fields['n']:03X}"
    if kind == BYTE:
        return f"0x{fields['k']:02X}"
    if kind == NIB:
        return str(fields['n'])
    return kind


def disassemble(opcode: int) -> Optional[str]:
    """Render one opcode as assembler text, or None when no mnemonic encodes it."""
    for mnemonic, kinds, template in INSTRUCTION_FORMS:
        fields = match_template(template, opcode)
        if fields is None:
            continue
        operands = ", ".join(_format_operand(kind, fields) for kind in kinds)
        return f"{mnemonic} {operands}" if operands else mnemonic
    return None


def disassemble_program(
    data: bytes, base: int = PROGRAM_START
) -> Iterator[Tuple[int, int, str]]:
    """Walk a ROM two bytes at a time, yielding (address, opcode, text).

    Words with no mnemonic, and a trailing odd byte, come out as 'byte' data.
    """
    for offset in range(0, len(data) - 1, 2):
        address = (base + offset) & ADDRESS_MASK
        opcode = (data[offset] << 8) | data[offset + 1]
        text = disassemble(opcode)
        if text is None:
            text = f"byte 0x{data[offset]:02X}, 0x{data[offset + 1]:02X}"
        yield address, opcode, text

    if len(data) % 2:
        yield (base + len(data) - 1) & ADDRESS_MASK, data[-1], f"byte 0x{data[-1]:02X}"
