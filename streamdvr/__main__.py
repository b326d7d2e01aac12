from .dvr import main

main()
