from gotolang.cli import main

main()
