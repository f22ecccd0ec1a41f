"""Export PGP public keys and create PGP signatures using AWS KMS keys."""
import contextlib
import logging
import sys

import configargparse

from . import converter, errors, kms, util

log = logging.getLogger(__name__)


def _open_output(path):
    if path and path != '-':
        return open(path, 'wb')
    return contextlib.nullcontext(sys.stdout.buffer)


def _open_input(path):
    if path != '-':
        return open(path, 'rb')
    return contextlib.nullcontext(sys.stdin.buffer)


def _create_converter(args, verify=False):
    entity = kms.create_entity(key_id=args.key, region=args.region,
                               profile=args.profile, timeout=args.timeout,
                               max_attempts=args.max_attempts)
    return converter.Converter(entity, timeout=args.timeout, verify=verify)


def run_export(args):
    """Export the KMS key as PGP public key, self-certifying a user ID."""
    c = _create_converter(args)
    result = c.export(name=args.name, comment=args.comment,
                      email=args.email, armored=args.armor)
    if args.armor:
        result += b'\n'
    with _open_output(args.output) as f:
        f.write(result)


def run_sign(args):
    """Sign the input (file or stdin) using the KMS key."""
    c = _create_converter(args, verify=not args.no_verify)
    with _open_input(args.input) as f:
        result = c.sign(data=f, clear_signed=args.clear_sign,
                        detached=args.detach_sign, armored=args.armor)
    with _open_output(args.output) as f:
        f.write(result)


def run_verify(args):
    """Verify a signature created by the KMS key."""
    c = _create_converter(args)
    with _open_input(args.signature) as f:
        signature = f.read()
    data = None
    if args.data:
        with _open_input(args.data) as f:
            data = f.read()
    c.check(signature=signature, data=data)
    sys.stderr.write('Good signature by {}\n'.format(c.entity.primary_key))


def create_parser():
    """Create command-line parser, registering all subcommands."""
    p = configargparse.ArgParser(
        prog='gpg-kms', description='Bridge KMS system and PGP',
        default_config_files=['~/.config/gpg-kms.conf'])
    p.add_argument('-v', '--verbose', default=0, action='count')
    p.add_argument('--log-file', type=str,
                   help='Path to the log file (appended).')
    p.add_argument('-k', '--key', required=True, env_var='GPG_KMS_KEY',
                   help='ID, ARN or alias of the key within the KMS to use')
    p.add_argument('--region', env_var='AWS_REGION',
                   help='AWS region where key is stored')
    p.add_argument('--profile', env_var='AWS_PROFILE',
                   help='AWS profile (from ~/.aws/config) to use')
    p.add_argument('--timeout', type=float, default=None,
                   help='timeout (in seconds) for each KMS request')
    p.add_argument('--max-attempts', type=int, default=None,
                   help='maximal number of attempts for each KMS request')

    subparsers = p.add_subparsers(title='Action', dest='action')
    subparsers.required = True

    export = subparsers.add_parser('export', help=run_export.__doc__)
    export.add_argument('output', nargs='?', default='-',
                        help='Use stdout, if not specified or equals to "-".')
    export.add_argument('-a', '--armor', default=False, action='store_true',
                        help='Export in ASCII armored format')
    export.add_argument('--name', required=True, help='Name of key owner')
    export.add_argument('--comment', default='',
                        help='Comment to associate with key')
    export.add_argument('--email', required=True, help='E-mail of key owner')
    export.set_defaults(func=run_export)

    sign = subparsers.add_parser('sign', help=run_sign.__doc__)
    sign.add_argument('input', help='Use stdin, if equals to "-".')
    sign.add_argument('output', nargs='?', default='-',
                      help='Use stdout, if not specified or equals to "-".')
    sign.add_argument('-a', '--armor', default=False, action='store_true',
                      help='Create ASCII armored output')
    g = sign.add_mutually_exclusive_group()
    g.add_argument('--clear-sign', default=False, action='store_true',
                   help='Create clear text signature')
    g.add_argument('-b', '--detach-sign', default=False, action='store_true',
                   help='Create detached signature')
    sign.add_argument('--no-verify', default=False, action='store_true',
                      help='Skip verifying KMS signatures locally')
    sign.set_defaults(func=run_sign)

    verify = subparsers.add_parser('verify', help=run_verify.__doc__)
    verify.add_argument('signature', help='Use stdin, if equals to "-".')
    verify.add_argument('data', nargs='?',
                        help='Signed data (for detached signatures).')
    verify.set_defaults(func=run_verify)
    return p


def main(argv=None):
    """Main function."""
    args = create_parser().parse_args(argv)
    util.setup_logging(verbosity=args.verbose, filename=args.log_file)
    try:
        args.func(args)
    except errors.Error as e:
        log.debug('%s failed', args.action, exc_info=True)
        sys.stderr.write('{}\n'.format(e))
        return 1
    except OSError as e:
        sys.stderr.write('{}\n'.format(e))
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
