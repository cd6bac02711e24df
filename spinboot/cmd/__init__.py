# This file is part of spinboot. See LICENSE file for license information.
