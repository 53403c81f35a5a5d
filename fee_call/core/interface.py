"""
Human-readable ABI interface

Parses Solidity-style function declarations such as
``function setFeePercentage(uint256 newFeePercentage)`` (or JSON ABI entries)
into function fragments, and encodes/decodes call data for them.

Design Notes:
- eth-abi owns the encoding rules; this module only turns declarations into
  canonical type strings and checks arity/values before handing them over
- Selectors are keccak-256 based via eth-utils
- Values are never coerced: 5.5, "500" or True are rejected for uint256
  instead of being truncated or converted
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Tuple, Union

from eth_abi import decode, encode, grammar, is_encodable, is_encodable_type
from eth_abi.exceptions import DecodingError, EncodingError, ParseError
from eth_utils import function_signature_to_4byte_selector, to_bytes

from ..utils.exceptions import AbiError, ErrorCodes

LOG = logging.getLogger(__name__)

FragmentLike = Union[str, Dict[str, Any]]

_IDENTIFIER = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_ARRAY_SUFFIX = re.compile(r"(?:\[\d*\])*")
_PAYABLE = re.compile(r"payable((?:\[\d*\])*)")
_SELECTOR = re.compile(r"^0x[0-9a-fA-F]{8}$")
_KEYWORD = re.compile(r"^(function|event|error|constructor|fallback|receive)\b")
_RETURNS = re.compile(r"\breturns\b")

_DATA_LOCATIONS = {"memory", "calldata", "storage"}
_MUTABILITIES = {"pure", "view", "nonpayable", "payable"}
_VISIBILITIES = {"external", "public"}


def _invalid(message: str) -> AbiError:
    return AbiError(message, code=ErrorCodes.ABI_INVALID_FRAGMENT)


def _find_closing(text: str, start: int) -> int:
    """Index of the ')' matching the '(' at text[start]"""
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index
    raise _invalid(f"Unbalanced parentheses in '{text}'")


def _split_top_level(text: str) -> List[str]:
    """Split a parameter list on commas that are not nested in parentheses"""
    if not text.strip():
        return []

    parts = []
    depth = 0
    current = []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))

    if any(not part.strip() for part in parts):
        raise _invalid(f"Empty parameter in '({text})'")
    return parts


def _normalize_type(raw: str) -> str:
    """Canonical elementary type, e.g. 'uint' -> 'uint256', 'uint[2]' -> 'uint256[2]'"""
    try:
        abi_type = grammar.parse(grammar.normalize(raw))
        abi_type.validate()
    except (ParseError, ValueError) as e:
        raise AbiError(
            f"Invalid type '{raw}': {e}",
            code=ErrorCodes.ABI_INVALID_FRAGMENT,
            cause=e
        ) from e

    if isinstance(abi_type, grammar.TupleType):
        raise _invalid(f"Tuple type '{raw}' needs named components")

    # the grammar accepts any base name, eth-abi only registers the real ones
    canonical = abi_type.to_type_str()
    if not is_encodable_type(canonical):
        raise _invalid(f"Unsupported ABI type '{raw}'")
    return canonical


@dataclass(frozen=True)
class AbiParam:
    """A function parameter; tuple types are stored as '(t1,t2)' plus array suffix"""
    type: str
    name: str = ""
    components: Tuple["AbiParam", ...] = ()

    @property
    def array_suffix(self) -> str:
        if self.components:
            return self.type[_find_closing(self.type, 0) + 1:]
        return self.type[len(self.type.split("[", 1)[0]):]

    def to_abi(self) -> Dict[str, Any]:
        """JSON ABI representation"""
        if self.components:
            return {
                "name": self.name,
                "type": "tuple" + self.array_suffix,
                "components": [c.to_abi() for c in self.components],
            }
        return {"name": self.name, "type": self.type}

    def format(self) -> str:
        if self.components:
            inner = ", ".join(c.format() for c in self.components)
            type_str = f"tuple({inner}){self.array_suffix}"
        else:
            type_str = self.type
        return f"{type_str} {self.name}" if self.name else type_str

    @classmethod
    def parse(cls, text: str) -> "AbiParam":
        """Parse one declaration parameter, e.g. 'uint256 newFeePercentage'"""
        text = text.strip()
        if text.startswith("tuple("):
            text = text[len("tuple"):]

        if text.startswith("("):
            close = _find_closing(text, 0)
            components = tuple(cls.parse(part) for part in _split_top_level(text[1:close]))
            rest = text[close + 1:]
            suffix = _ARRAY_SUFFIX.match(rest).group(0)
            type_str = "(" + ",".join(c.type for c in components) + ")" + suffix
            words = rest[len(suffix):].split()
        else:
            words = text.split()
            raw_type = words.pop(0)
            payable = _PAYABLE.fullmatch(words[0]) if raw_type == "address" and words else None
            if payable:
                # address payable encodes as a plain address
                raw_type += payable.group(1)
                words.pop(0)
            type_str = _normalize_type(raw_type)
            components = ()

        words = [w for w in words if w not in _DATA_LOCATIONS and w != "indexed"]
        if len(words) > 1:
            raise _invalid(f"Unexpected tokens in parameter '{text}'")

        name = words[0] if words else ""
        if name and not _IDENTIFIER.fullmatch(name):
            raise _invalid(f"Invalid parameter name '{name}'")

        return cls(type=type_str, name=name, components=components)

    @classmethod
    def from_abi(cls, entry: Dict[str, Any]) -> "AbiParam":
        """Build from a JSON ABI input/output entry"""
        type_str = entry.get("type")
        if not type_str:
            raise _invalid(f"ABI parameter without a type: {entry}")
        name = entry.get("name") or ""

        if type_str.startswith("tuple"):
            suffix = type_str[len("tuple"):]
            if not _ARRAY_SUFFIX.fullmatch(suffix):
                raise _invalid(f"Invalid tuple type '{type_str}'")
            components = tuple(cls.from_abi(c) for c in entry.get("components", []))
            canonical = "(" + ",".join(c.type for c in components) + ")" + suffix
            return cls(type=canonical, name=name, components=components)

        return cls(type=_normalize_type(type_str), name=name)


@dataclass(frozen=True)
class FunctionFragment:
    """A parsed function declaration"""
    name: str
    inputs: Tuple[AbiParam, ...] = ()
    outputs: Tuple[AbiParam, ...] = ()
    state_mutability: str = "nonpayable"

    @property
    def signature(self) -> str:
        """Canonical signature used for the selector, e.g. 'setFeePercentage(uint256)'"""
        return f"{self.name}({','.join(p.type for p in self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    @property
    def input_types(self) -> List[str]:
        return [p.type for p in self.inputs]

    @property
    def output_types(self) -> List[str]:
        return [p.type for p in self.outputs]

    def to_abi(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "inputs": [p.to_abi() for p in self.inputs],
            "outputs": [p.to_abi() for p in self.outputs],
            "stateMutability": self.state_mutability,
        }

    def format(self) -> str:
        """Human-readable declaration"""
        text = f"function {self.name}({', '.join(p.format() for p in self.inputs)})"
        if self.state_mutability != "nonpayable":
            text += f" {self.state_mutability}"
        if self.outputs:
            text += f" returns ({', '.join(p.format() for p in self.outputs)})"
        return text


def _parse_declaration(text: str) -> FunctionFragment:
    text = text.strip().rstrip(";").strip()

    keyword = _KEYWORD.match(text)
    if keyword:
        if keyword.group(1) != "function":
            raise _invalid(f"Unsupported fragment type '{keyword.group(1)}'")
        text = text[keyword.end():].strip()

    name_match = _IDENTIFIER.match(text)
    if not name_match:
        raise _invalid("Missing function name")
    name = name_match.group(0)

    rest = text[name_match.end():].lstrip()
    if not rest.startswith("("):
        raise _invalid(f"Expected '(' after function name '{name}'")
    close = _find_closing(rest, 0)
    inputs = tuple(AbiParam.parse(part) for part in _split_top_level(rest[1:close]))

    tail = rest[close + 1:].strip()
    outputs: Tuple[AbiParam, ...] = ()
    returns = _RETURNS.search(tail)
    if returns:
        modifiers = tail[:returns.start()]
        out_text = tail[returns.end():].strip()
        if not out_text.startswith("("):
            raise _invalid("Expected '(' after 'returns'")
        out_close = _find_closing(out_text, 0)
        if out_text[out_close + 1:].strip():
            raise _invalid(f"Unexpected text after returns: '{out_text[out_close + 1:].strip()}'")
        outputs = tuple(AbiParam.parse(part) for part in _split_top_level(out_text[1:out_close]))
    else:
        modifiers = tail

    mutability = "nonpayable"
    for word in modifiers.split():
        if word == "constant":
            word = "view"
        if word in _MUTABILITIES:
            mutability = word
        elif word not in _VISIBILITIES:
            raise _invalid(f"Unexpected token '{word}'")

    return FunctionFragment(name=name, inputs=inputs, outputs=outputs, state_mutability=mutability)


def _fragment_from_abi(entry: Dict[str, Any]) -> FunctionFragment:
    entry_type = entry.get("type", "function")
    if entry_type != "function":
        raise _invalid(f"Unsupported fragment type '{entry_type}'")
    if not entry.get("name"):
        raise _invalid("Function ABI entry without a name")

    mutability = entry.get("stateMutability")
    if not mutability:
        if entry.get("constant"):
            mutability = "view"
        elif entry.get("payable"):
            mutability = "payable"
        else:
            mutability = "nonpayable"

    return FunctionFragment(
        name=entry["name"],
        inputs=tuple(AbiParam.from_abi(i) for i in entry.get("inputs", [])),
        outputs=tuple(AbiParam.from_abi(o) for o in entry.get("outputs", [])),
        state_mutability=mutability,
    )


def parse_fragment(fragment: FragmentLike) -> FunctionFragment:
    """
    Parse a function declaration or a JSON ABI function entry.

    Raises:
        AbiError: If the declaration is not a valid Solidity-style function
    """
    if isinstance(fragment, dict):
        return _fragment_from_abi(fragment)

    try:
        return _parse_declaration(fragment)
    except AbiError as e:
        raise AbiError(
            f"Invalid function declaration '{fragment}': {e.message}",
            fragment=fragment,
            code=e.code,
            cause=e.cause
        ) from e


def _to_bytes(data: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    try:
        return to_bytes(hexstr=data)
    except ValueError as e:
        raise AbiError(
            f"Invalid hex data: {data!r}",
            code=ErrorCodes.ABI_DECODING_FAILED,
            cause=e
        ) from e


class Interface:
    """
    A set of function fragments that can encode and decode call data.

    Usage:
        iface = Interface(["function setFeePercentage(uint256 newFeePercentage)"])
        call_data = iface.encode_function_data("setFeePercentage", [500])
    """

    def __init__(self, abi: Union[FragmentLike, Iterable[FragmentLike]]):
        if isinstance(abi, (str, dict)):
            abi = [abi]

        self._functions: Dict[str, FunctionFragment] = {}
        for item in abi:
            if isinstance(item, dict) and item.get("type", "function") != "function":
                # constructor/event/error entries of compiled artifacts
                continue
            fragment = parse_fragment(item)
            if fragment.signature in self._functions:
                LOG.debug(f"Duplicate function fragment ignored: {fragment.signature}")
                continue
            self._functions[fragment.signature] = fragment

    @property
    def functions(self) -> List[FunctionFragment]:
        return list(self._functions.values())

    @property
    def abi(self) -> List[Dict[str, Any]]:
        """JSON ABI, usable with web3.eth.contract(abi=...)"""
        return [f.to_abi() for f in self._functions.values()]

    def format(self) -> List[str]:
        return [f.format() for f in self._functions.values()]

    def get_function(self, key: Union[str, FunctionFragment]) -> FunctionFragment:
        """
        Look up a function by name, full signature, or 0x-prefixed selector.

        Raises:
            AbiError: If no function matches, or a bare name is overloaded
        """
        if isinstance(key, FunctionFragment):
            return key

        key = key.strip()
        if _SELECTOR.match(key):
            selector = bytes.fromhex(key[2:])
            matches = [f for f in self._functions.values() if f.selector == selector]
        elif "(" in key:
            signature = parse_fragment(key).signature
            matches = [self._functions[signature]] if signature in self._functions else []
        else:
            matches = [f for f in self._functions.values() if f.name == key]
            if len(matches) > 1:
                raise AbiError(
                    f"Ambiguous function name '{key}', use one of: "
                    + ", ".join(f.signature for f in matches),
                    function_name=key,
                    code=ErrorCodes.ABI_FUNCTION_NOT_FOUND
                )

        if not matches:
            raise AbiError(
                f"No function matching '{key}' in interface",
                function_name=key,
                code=ErrorCodes.ABI_FUNCTION_NOT_FOUND
            )
        return matches[0]

    def get_selector(self, key: Union[str, FunctionFragment]) -> str:
        return "0x" + self.get_function(key).selector.hex()

    def encode_function_data(
        self,
        key: Union[str, FunctionFragment],
        values: Sequence[Any] = ()
    ) -> bytes:
        """
        Encode call data: 4-byte selector followed by the ABI-encoded values.

        Raises:
            AbiError: On arity mismatch or a value that does not fit its type
        """
        fragment = self.get_function(key)
        values = list(values)

        if len(values) != len(fragment.inputs):
            raise AbiError(
                f"{fragment.signature} expects {len(fragment.inputs)} argument(s), got {len(values)}",
                function_name=fragment.name
            )

        for index, (param, value) in enumerate(zip(fragment.inputs, values)):
            if not is_encodable(param.type, value):
                raise AbiError(
                    f"Value {value!r} is not a valid {param.type} for parameter "
                    f"'{param.name or index}' of {fragment.signature}",
                    function_name=fragment.name,
                    parameter=param.name or str(index)
                )

        try:
            encoded = encode(fragment.input_types, values)
        except EncodingError as e:
            raise AbiError(
                f"Failed to encode arguments for {fragment.signature}: {e}",
                function_name=fragment.name,
                cause=e
            ) from e

        return fragment.selector + encoded

    def decode_function_data(
        self,
        key: Union[str, FunctionFragment],
        data: Union[bytes, str]
    ) -> Tuple[Any, ...]:
        """Decode the arguments of call data produced for this function"""
        fragment = self.get_function(key)
        raw = _to_bytes(data)

        if raw[:4] != fragment.selector:
            raise AbiError(
                f"Call data selector 0x{raw[:4].hex()} does not match "
                f"{fragment.signature} (0x{fragment.selector.hex()})",
                function_name=fragment.name,
                code=ErrorCodes.ABI_DECODING_FAILED
            )

        return self._decode(fragment, fragment.input_types, raw[4:])

    def decode_function_result(
        self,
        key: Union[str, FunctionFragment],
        data: Union[bytes, str]
    ) -> Tuple[Any, ...]:
        """Decode the return data of an eth_call to this function"""
        fragment = self.get_function(key)
        return self._decode(fragment, fragment.output_types, _to_bytes(data))

    def parse_transaction(self, data: Union[bytes, str]) -> Tuple[FunctionFragment, Tuple[Any, ...]]:
        """Identify the called function by selector and decode its arguments"""
        raw = _to_bytes(data)
        if len(raw) < 4:
            raise AbiError(
                "Call data is shorter than a function selector",
                code=ErrorCodes.ABI_DECODING_FAILED
            )
        fragment = self.get_function("0x" + raw[:4].hex())
        return fragment, self._decode(fragment, fragment.input_types, raw[4:])

    @staticmethod
    def _decode(fragment: FunctionFragment, types: List[str], payload: bytes) -> Tuple[Any, ...]:
        try:
            return tuple(decode(types, payload))
        except DecodingError as e:
            raise AbiError(
                f"Failed to decode data for {fragment.signature}: {e}",
                function_name=fragment.name,
                code=ErrorCodes.ABI_DECODING_FAILED,
                cause=e
            ) from e
