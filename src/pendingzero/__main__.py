from pendingzero.cli import main

main()
