"""Run the git-virtual-fs command line with `python -m git_virtual_fs`."""

from .cli import app

if __name__ == "__main__":
    app(prog_name="git-virtual-fs")
