import logging
import os
import random
import string
import sys

from rich import print
from rich.logging import RichHandler

import fsapi
from errors import VolumeError, NotFoundError
from fsapi import get_volume
from main import mkfs

commands = []


def command(name, description):
    def decorator(func):
        commands.append({'name': name, 'func': func, 'description': description})
        return func
    return decorator


@command('help', 'Show available commands')
def handle_help(args):
    print("Available commands:")
    for cmd in sorted(commands, key=lambda x: x['name']):
        print(f"  {cmd['name']}: {cmd['description']}")


@command('ls', 'List files')
def handle_ls(args):
    vol = get_volume()
    try:
        for name in vol.list_files():
            st = vol.stat(name)
            print(f"{st['size']:>7d} {name}")
    except VolumeError as e:
        print(f"ls: {e}")


@command('touch', 'Create an empty file')
def handle_touch(args):
    if not args:
        print("touch: missing operand")
        return
    try:
        get_volume().create(args[0])
    except VolumeError as e:
        print(f"touch: {e}")


@command('write', 'Replace a file with the given text (write name text...)')
def handle_write(args):
    if len(args) < 2:
        print("write: missing operand (usage: write filename text)")
        return
    write_text(args[0], ' '.join(args[1:]), "write")


@command('echo', 'Display text, or store it with: echo text > file')
def handle_echo(args):
    if '>' not in args:
        print(' '.join(args))
        return

    redirect_idx = args.index('>')
    if redirect_idx != len(args) - 2:
        print("echo: expected exactly one filename after '>'")
        return
    write_text(args[-1], ' '.join(args[:redirect_idx]) + '\n', "echo")


def write_text(name, text, cmd_name):
    vol = get_volume()
    try:
        try:
            vol.create(name)
        except FileExistsError:
            pass
        vol.write(name, text.encode('utf-8'))
    except VolumeError as e:
        print(f"{cmd_name}: {e}")


@command('cat', 'Display file contents')
def handle_cat(args):
    if not args:
        print("cat: missing operand")
        return
    try:
        data = get_volume().read(args[0])
        print(data.decode('utf-8', errors='ignore'), end="")
    except VolumeError as e:
        print(f"cat: {e}")


@command('rm', 'Remove a file')
def handle_rm(args):
    if not args:
        print("rm: missing operand")
        return
    try:
        get_volume().delete(args[0])
    except VolumeError as e:
        print(f"rm: {e}")


@command('rndfile', 'Create a file with random ASCII characters (rndfile name size)')
def handle_rndfile(args):
    if len(args) < 2:
        print("rndfile: missing operand (usage: rndfile filename size)")
        return

    size_str = args[1]
    try:
        if size_str.upper().endswith('K'):
            size = int(size_str[:-1]) * 1024
        elif size_str.upper().endswith('B'):
            size = int(size_str[:-1])
        else:
            size = int(size_str)
    except ValueError:
        print("rndfile: invalid size format")
        return

    random_chars = ''.join(random.choices(
        string.ascii_letters + string.digits + string.punctuation + ' ',
        k=max(size, 0)
    ))
    vol = get_volume()
    try:
        try:
            vol.delete(args[0])
        except NotFoundError:
            pass
        vol.create(args[0])
        vol.write(args[0], random_chars.encode('utf-8'), size)
        print(f"Created {args[0]} with {size} bytes of random ASCII data")
    except VolumeError as e:
        print(f"rndfile: {e}")


@command('stat', 'Display file status')
def handle_stat(args):
    if not args:
        print("stat: missing operand")
        return
    try:
        st = get_volume().stat(args[0])
        print(f"  File: {st['name']}")
        print(f"  Size: {st['size']}\t\tBlocks: {len(st['blocks'])}")
        print(f" Inode: {st['slot']}\t\tBlock list: {st['blocks']}")
    except VolumeError as e:
        print(f"stat: {e}")


@command('df', 'Display disk space usage')
def handle_df(args):
    info = get_volume().statfs()
    used_blocks = info['data_blocks'] - info['free_blocks']
    used_inodes = info['total_inodes'] - info['free_inodes']
    print("Blocks     Used  Available  Use%  Inodes  IUsed  IFree")
    print("{:6d} {:8d} {:10d} {:4.0f}% {:7d} {:6d} {:6d}".format(
        info['data_blocks'], used_blocks, info['free_blocks'],
        used_blocks / info['data_blocks'] * 100,
        info['total_inodes'], used_inodes, info['free_inodes']))


@command('fsck', 'Check volume consistency')
def handle_fsck(args):
    problems = get_volume().check()
    if not problems:
        print("[green]clean[/green]")
    for problem in problems:
        print(f"[red]{problem}[/red]")


def main():
    logging.basicConfig(level=logging.INFO, format="%(message)s", handlers=[RichHandler()])

    image_path = sys.argv[1] if len(sys.argv) > 1 else "fs.img"

    try:
        if not os.path.exists(image_path):
            mkfs(image_path)
        fsapi.mount(image_path)
        print(f"Volume mounted from {image_path}")
    except VolumeError as e:
        print(f"Error loading volume: {e}")
        return

    try:
        while True:
            try:
                print("[bold white]>[/bold white] ", end="")
                cmd = input().strip()
                if not cmd:
                    continue

                parts = cmd.split()
                command_name = parts[0].lower()
                args = parts[1:]

                if command_name == "exit" or command_name == "quit":
                    break

                cmd_entry = next((c for c in commands if c['name'] == command_name), None)
                if cmd_entry:
                    cmd_entry['func'](args)
                else:
                    print(f"Unknown command: {command_name}")

            except (KeyboardInterrupt, EOFError):
                print("\nExiting...")
                break
    finally:
        fsapi.unmount()


if __name__ == "__main__":
    main()
