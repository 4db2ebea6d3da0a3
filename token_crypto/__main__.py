#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Command-line interface for token_crypto package"""


from typing import Optional, Sequence, TextIO, cast, Tuple

import os
import sys
import json
import logging
import argparse
import yaml
import colorama # type: ignore[import]
from colorama import Fore, Style
from pygments import highlight, lexers, formatters

# NOTE: this module runs with -m; do not use relative imports
from token_crypto import (
    TokenCipher,
    Jsonable,
    TokenCryptoError,
    TokenCryptoConfigError,
    MASTER_KEY_ENV_VAR,
    hash_text,
    generate_encryption_key,
    validate_encryption_key,
    __version__ as pkg_version,
  )

logger = logging.getLogger(__name__)

CONFIG_FILE_KEY_PROPERTY = 'oauth_encryption_key'

def is_colorizable(stream: TextIO) -> bool:
  is_a_tty = hasattr(stream, 'isatty') and stream.isatty()
  return is_a_tty

class CmdExitError(RuntimeError):
  exit_code: int

  def __init__(self, exit_code: int, msg: Optional[str]=None):
    if msg is None:
      msg = f"Command exited with return code {exit_code}"
    super().__init__(msg)
    self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
  pass

class NoExitArgumentParser(argparse.ArgumentParser):
  def exit(self, status=0, message=None):
    if message:
      self._print_message(message, sys.stderr)
    raise ArgparseExitError(status, message)

class CommandHandler:
  _argv: Optional[Sequence[str]]
  _parser: argparse.ArgumentParser
  _args: argparse.Namespace
  _raw_stdout: TextIO = sys.stdout
  _raw_stderr: TextIO = sys.stderr
  _colorize_stdout: bool = False
  _colorize_stderr: bool = False
  _compact: bool = False
  _raw: bool = False
  _output_file: Optional[str] = None
  _cipher: Optional[TokenCipher] = None

  def __init__(self, argv: Optional[Sequence[str]]=None):
    self._argv = argv

  def ocolor(self, codes: str) -> str:
    return codes if self._colorize_stdout else ""

  def ecolor(self, codes: str) -> str:
    return codes if self._colorize_stderr else ""

  def pretty_print(
        self,
        value: Jsonable,
        compact: Optional[bool]=None,
        colorize: Optional[bool]=None,
        raw: Optional[bool]=None,
      ):
    if raw is None:
      raw = self._raw
    if raw and isinstance(value, str):
      self.write_output(value)
      return

    if compact is None:
      compact = self._compact
    if colorize is None:
      colorize = True

    def emit_to(f: TextIO):
      final_colorize = colorize and ((f is sys.stdout and self._colorize_stdout) or (f is sys.stderr and self._colorize_stderr))

      if compact:
        json_text = json.dumps(value, separators=(',', ':'), sort_keys=True)
      else:
        json_text = json.dumps(value, indent=2, sort_keys=True)
      if final_colorize:
        json_text = highlight(json_text, lexers.JsonLexer(), formatters.TerminalFormatter())  # pylint: disable=no-member
      else:
        json_text += '\n'
      f.write(json_text)

    output_file = self._output_file
    if output_file is None:
      emit_to(sys.stdout)
    else:
      with open(output_file, "w", encoding='utf-8') as f:
        emit_to(f)

  def write_output(self, text: str):
    output_file = self._output_file
    if output_file is None:
      sys.stdout.write(text)
    else:
      with open(output_file, 'w', encoding='utf-8') as f:
        f.write(text)

  def read_input(self, value: Optional[str], what: str) -> str:
    """Resolve a value from the positional argument, --stdin, or --input.

    Values read from a file or stdin have trailing line terminators removed.
    """
    args = self._args
    use_stdin: bool = args.use_stdin
    input_file: Optional[str] = args.input_file
    if use_stdin:
      if input_file is None:
        input_file = '/dev/stdin'
      else:
        raise TokenCryptoError("Only one of --stdin and --input can be provided")
    if value is None:
      if input_file is None:
        raise TokenCryptoError(f"One of {what} parameter, --stdin, or --input must be provided")
      with open(input_file, encoding='utf-8') as f:
        value = f.read().rstrip('\r\n')
    else:
      if not input_file is None:
        raise TokenCryptoError(f"Only one of {what} parameter, --stdin, and --input can be provided")
    return value

  def get_key_hex(self) -> Tuple[Optional[str], str]:
    """Return the configured master key text and a description of where it came from."""
    args = self._args
    key_hex: Optional[str] = args.key
    if not key_hex is None:
      return key_hex, '--key'
    config_file: Optional[str] = args.config_file
    if not config_file is None:
      with open(config_file, encoding='utf-8') as f:
        config_obj = yaml.safe_load(f)
      if not isinstance(config_obj, dict) or not isinstance(config_obj.get(CONFIG_FILE_KEY_PROPERTY, None), str):
        raise TokenCryptoConfigError(f"No '{CONFIG_FILE_KEY_PROPERTY}' string property in config file {config_file}")
      return cast(str, config_obj[CONFIG_FILE_KEY_PROPERTY]), config_file
    return os.environ.get(MASTER_KEY_ENV_VAR), MASTER_KEY_ENV_VAR

  def get_cipher(self) -> TokenCipher:
    if self._cipher is None:
      args = self._args
      if args.key is None and args.config_file is None:
        self._cipher = TokenCipher.from_env()
      else:
        key_hex, source = self.get_key_hex()
        if key_hex is None or not validate_encryption_key(key_hex):
          raise TokenCryptoConfigError(f"Master key from {source} must be 64 hex characters")
        self._cipher = TokenCipher(key_hex)
    return self._cipher

  def cmd_bare(self) -> int:
    print("A command is required", file=sys.stderr)
    return 1

  def cmd_version(self) -> int:
    self.pretty_print(pkg_version)
    return 0

  def cmd_generate_key(self) -> int:
    args = self._args
    key = generate_encryption_key()
    write_config_file: Optional[str] = args.write_config
    if write_config_file is None:
      self.pretty_print(key)
    else:
      with open(write_config_file, 'w', encoding='utf-8') as f:
        yaml.safe_dump({CONFIG_FILE_KEY_PROPERTY: key}, f)
      logger.info("Wrote new master key to %s", write_config_file)
    return 0

  def cmd_validate_key(self) -> int:
    args = self._args
    candidate: Optional[str] = args.candidate_key
    if candidate is None:
      candidate, _ = self.get_key_hex()
    is_valid = candidate is not None and validate_encryption_key(candidate)
    self.pretty_print(is_valid)
    return 0 if is_valid else 1

  def cmd_encrypt(self) -> int:
    args = self._args
    plaintext = self.read_input(args.value, 'value')
    cipher = self.get_cipher()
    if args.json:
      blob = cipher.encrypt_jsonable(json.loads(plaintext))
    else:
      blob = cipher.encrypt(plaintext)
    self.pretty_print(blob)
    return 0

  def cmd_decrypt(self) -> int:
    args = self._args
    blob = self.read_input(args.blob, 'blob').strip()
    cipher = self.get_cipher()
    value: Jsonable
    if args.json:
      value = cipher.decrypt_jsonable(blob)
    else:
      value = cipher.decrypt(blob)
    self.pretty_print(value)
    return 0

  def cmd_hash(self) -> int:
    args = self._args
    text = self.read_input(args.value, 'value')
    self.pretty_print(hash_text(text))
    return 0

  def add_input_arguments(self, parser: argparse.ArgumentParser, what: str):
    parser.add_argument('--stdin', dest="use_stdin", action='store_true', default=False,
                        help=f'Read the {what} from stdin instead of the commandline')
    parser.add_argument('-i', '--input', dest="input_file", default=None,
                        help=f'Read the {what} from the specified file instead of the commandline')

  def run(self) -> int:
    """Run the token-crypto command-line tool with provided arguments

    Args:
        argv (Optional[Sequence[str]], optional):
            A list of commandline arguments (NOT including the program as argv[0]!),
            or None to use sys.argv[1:]. Defaults to None.

    Returns:
        int: The exit code that would be returned if this were run as a standalone command.
    """
    parser = NoExitArgumentParser(prog='token-crypto', description="Encrypt and decrypt OAuth tokens for storage at rest.")


    # ======================= Main command

    self._parser = parser
    parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                        help='Display detailed exception information')
    parser.add_argument('-M', '--monochrome', action='store_true', default=False,
                        help='Output to stdout/stderr in monochrome. Default is to colorize if stream is a compatible terminal')
    parser.add_argument('-c', '--compact', action='store_true', default=False,
                        help='Compact instead of pretty-printed output')
    parser.add_argument('-r', '--raw', action='store_true', default=False,
                        help='''Output raw strings directly, not json-encoded.''')
    parser.add_argument('-o', '--output', dest="output_file", default=None,
                        help='Write output value to the specified file instead of stdout')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase logging verbosity. -v for INFO, -vv for DEBUG')
    parser.add_argument('-k', '--key', default=None,
                        help=f'''The 64-hex-character master key. By default, the "{CONFIG_FILE_KEY_PROPERTY}"
                                property of --config-file, or environment variable {MASTER_KEY_ENV_VAR}, is used''')
    parser.add_argument('--config-file', '-C', default=None,
                        help=f'''A YAML document whose top level dict has a "{CONFIG_FILE_KEY_PROPERTY}" string
                                property holding the master key. By default environment variable
                                {MASTER_KEY_ENV_VAR} is used''')
    parser.set_defaults(func=self.cmd_bare)

    subparsers = parser.add_subparsers(
                        title='Commands',
                        description='Valid commands',
                        help='Additional help available with "<command-name> -h"')


    # ======================= version

    parser_version = subparsers.add_parser('version',
                            description='''Display version information. JSON-quoted string. If a raw string is desired, use -r.''')
    parser_version.set_defaults(func=self.cmd_version)

    # ======================= generate-key

    parser_generate_key = subparsers.add_parser('generate-key',
                            description="Generate a new random master key suitable for OAUTH_ENCRYPTION_KEY")
    parser_generate_key.add_argument('-w', '--write-config', default=None,
                        help=f'Write the new key to the given YAML file, in property "{CONFIG_FILE_KEY_PROPERTY}", instead of stdout')
    parser_generate_key.set_defaults(func=self.cmd_generate_key)

    # ======================= validate-key

    parser_validate_key = subparsers.add_parser('validate-key',
                            description='''Check that a master key is exactly 64 hex characters. Exits with 0 if valid,
                                           1 otherwise.''')
    parser_validate_key.add_argument('candidate_key', nargs='?', default=None,
                        help='The key to check. By default, the configured master key is checked.')
    parser_validate_key.set_defaults(func=self.cmd_validate_key)

    # ======================= encrypt

    parser_encrypt = subparsers.add_parser('encrypt', description="Encrypt a token")
    parser_encrypt.add_argument('--json', '-j', action='store_true', default=False,
                        help='The provided value is JSON text to be reserialized in compact form before encrypting.')
    self.add_input_arguments(parser_encrypt, 'value')
    parser_encrypt.add_argument('value',
                        nargs='?',
                        default=None,
                        help="""The value to be encrypted. Omit this parameter if --input or --stdin is provided.""")
    parser_encrypt.set_defaults(func=self.cmd_encrypt)

    # ======================= decrypt

    parser_decrypt = subparsers.add_parser('decrypt', description="Get the plaintext value associated with an encrypted blob")
    parser_decrypt.add_argument('--json', '-j', action='store_true', default=False,
                        help='The plaintext is interpreted as JSON which will be reformatted for readability.')
    self.add_input_arguments(parser_decrypt, 'blob')
    parser_decrypt.add_argument('blob',
                        nargs='?',
                        default=None,
                        help="""The hex blob to be decrypted. Omit this parameter if --input or --stdin is provided.""")
    parser_decrypt.set_defaults(func=self.cmd_decrypt)

    # ======================= hash

    parser_hash = subparsers.add_parser('hash', description="Display the SHA-256 fingerprint of a value")
    self.add_input_arguments(parser_hash, 'value')
    parser_hash.add_argument('value',
                        nargs='?',
                        default=None,
                        help="""The value to be hashed. Omit this parameter if --input or --stdin is provided.""")
    parser_hash.set_defaults(func=self.cmd_hash)

    # =========================================================

    try:
      args = parser.parse_args(self._argv)
    except ArgparseExitError as ex:
      return ex.exit_code
    traceback: bool = args.traceback
    try:
      self._args = args
      self._raw_stdout = sys.stdout
      self._raw_stderr = sys.stderr
      self._raw = args.raw
      self._compact = args.compact
      self._output_file = args.output_file
      verbose: int = args.verbose
      log_level = logging.WARNING if verbose == 0 else (logging.INFO if verbose == 1 else logging.DEBUG)
      logging.basicConfig(level=log_level, stream=sys.stderr, format='%(levelname)s %(name)s: %(message)s')
      monochrome: bool = args.monochrome
      if not monochrome:
        self._colorize_stdout = is_colorizable(sys.stdout)
        self._colorize_stderr = is_colorizable(sys.stderr)
        if self._colorize_stdout or self._colorize_stderr:
          colorama.init(wrap=False)
          if self._colorize_stdout:
            new_stream = colorama.AnsiToWin32(sys.stdout)
            if new_stream.should_wrap():
              sys.stdout = new_stream
          if self._colorize_stderr:
            new_stream = colorama.AnsiToWin32(sys.stderr)
            if new_stream.should_wrap():
              sys.stderr = new_stream
      rc = args.func()
    except Exception as ex:
      if isinstance(ex, CmdExitError):
        rc = ex.exit_code
      else:
        rc = 1
      if rc != 0:
        if traceback:
          raise

        print(f"{self.ecolor(Fore.RED)}token-crypto: error: {ex}{self.ecolor(Style.RESET_ALL)}", file=sys.stderr)
    return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
  try:
    rc = CommandHandler(argv).run()
  except CmdExitError as ex:
    rc = ex.exit_code
  return rc

def main() -> None:
  sys.exit(run())

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
  main()
